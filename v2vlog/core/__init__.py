# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/core/__init__.py
from .exceptions import ConfigError, Fatal, InputError, V2VLogError
from .logger import Log

__all__ = ["ConfigError", "Fatal", "InputError", "V2VLogError", "Log"]
