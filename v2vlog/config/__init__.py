# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/config/__init__.py
