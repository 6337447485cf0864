# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/segmenter.py
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..core.memo import memoize_by_identity
from .classifier import classify_lines, parse_stage_marker, stage_elapsed
from .records import LogLine, StageRecord

logger = logging.getLogger(__name__)


def _close(name: str, elapsed: float, bucket: List[LogLine]) -> StageRecord:
    return StageRecord(
        name=name,
        start_line=bucket[0].index,
        end_line=bucket[-1].index,
        elapsed_seconds=elapsed,
        lines=list(bucket),
        raw_lines=[ln.text for ln in bucket],
    )


@memoize_by_identity(maxsize=16)
def segment_stages(lines: Sequence[LogLine]) -> List[StageRecord]:
    """
    Partition one tool run's classified lines into ordered stages.

    Every marker line opens a new stage and closes the previous one, so the
    stages tile the input exactly: no gaps, no overlaps. Lines before the
    first marker form a leading stage with an empty name. Without any marker
    the whole input is a single stage; empty input gives no stages.

    The elapsed clock never goes backwards: an unparsable counter inherits
    the previous stage's value and a smaller one is clamped up to it.
    """
    stages: List[StageRecord] = []
    bucket: List[LogLine] = []
    name: Optional[str] = None
    elapsed = 0.0

    for ln in lines:
        marker = parse_stage_marker(ln.text)
        if marker is not None:
            if bucket:
                stages.append(_close(name or "", elapsed, bucket))
            token, name = marker
            elapsed = max(elapsed, stage_elapsed(token, elapsed))
            bucket = [ln]
        else:
            bucket.append(ln)

    if bucket:
        stages.append(_close(name or "", elapsed, bucket))

    logger.debug("Segmented %d lines into %d stages", len(lines), len(stages))
    return stages


def segment_text_lines(texts: Sequence[str], offset: int = 0) -> List[StageRecord]:
    """Classify raw text lines and segment them in one go."""
    return segment_stages(classify_lines(texts, offset=offset))
