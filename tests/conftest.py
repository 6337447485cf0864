# SPDX-License-Identifier: LGPL-3.0-or-later
import os
import sys
from pathlib import Path

import pytest

_THIS_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _THIS_DIR.parent

if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

os.environ.setdefault("PYTHONPATH", str(_REPO_ROOT))


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: fast tests without I/O beyond tmp_path")
    config.addinivalue_line("markers", "security: secret redaction and similar checks")


@pytest.fixture(autouse=True)
def _fresh_memo_caches():
    """Identity caches must not leak results between tests that reuse literals."""
    yield
    from v2vlog.core.memo import clear_all_caches

    clear_all_caches()


SAMPLE_LOG = "\n".join(
    [
        "Building command: virt-v2v [-i disk guest.img -o local -os /var/tmp]",
        "info: virt-v2v: virt-v2v 2.5.6rhel=9,release=1.el9 (x86_64)",
        "libvirt version: 10.0.0",
        "[   0.0] Setting up the source: -i disk guest.img",
        'libguestfs: trace: v2v: mount "/dev/sda1" "/"',
        "libguestfs: trace: v2v: mount = 0",
        'libguestfs: trace: v2v: is_file "/etc/fstab"',
        "libguestfs: trace: v2v: is_file = 1",
        'libguestfs: trace: v2v: is_dir "/boot/grub2"',
        "libguestfs: trace: v2v: is_dir = 0",
        "[  10.5] Finishing off",
    ]
)


@pytest.fixture
def sample_log_text():
    """A short virt-v2v run: one source stage with a mount and two probes."""
    return SAMPLE_LOG


@pytest.fixture
def sample_log_file(tmp_path):
    path = tmp_path / "virt-v2v.log"
    path.write_text(SAMPLE_LOG + "\n", encoding="utf-8")
    return path
