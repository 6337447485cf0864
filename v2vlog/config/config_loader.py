# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# v2vlog/config/config_loader.py
from __future__ import annotations

import argparse
import glob
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

from ..core.exceptions import EXIT_CONFIG, ConfigError

_CONFIG_SUFFIXES = (".yaml", ".yml", ".json")


def _deep_merge(base: Dict[str, Any], over: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in over.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _norm_key(k: Any) -> str:
    return str(k).strip().replace("-", "_")


class Config:
    """
    YAML/JSON configuration for the command-line front end.

    Files are mappings of option name to value, e.g.::

        format: summary
        trees: true
        stage: Inspecting
        verbose: 1

    Several files can be given; later files override earlier ones and nested
    mappings are merged key by key. JSON files are read with the YAML loader
    (YAML is a superset of JSON).
    """

    @staticmethod
    def expand_configs(logger: logging.Logger, paths: Iterable[str]) -> List[Path]:
        """
        Expand ~, glob patterns and directories (sorted *.yaml/*.yml/*.json)
        into an ordered list of files. Duplicates keep their first position.
        """
        out: List[Path] = []
        seen: set[str] = set()

        def _add(p: Path) -> None:
            key = str(p.resolve())
            if key not in seen:
                seen.add(key)
                out.append(p)

        for raw in paths:
            s = str(Path(str(raw)).expanduser())
            matches = sorted(glob.glob(s)) if any(ch in s for ch in "*?[") else [s]
            if not matches:
                raise ConfigError(code=EXIT_CONFIG, msg=f"Config pattern matched nothing: {raw}", context={"pattern": raw})
            for m in matches:
                p = Path(m)
                if p.is_dir():
                    for child in sorted(p.iterdir()):
                        if child.is_file() and child.suffix.lower() in _CONFIG_SUFFIXES:
                            _add(child)
                else:
                    _add(p)

        logger.debug("Config files: %s", [str(p) for p in out])
        return out

    @staticmethod
    def load_one(logger: logging.Logger, path: Path) -> Dict[str, Any]:
        try:
            raw = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ConfigError(code=EXIT_CONFIG, msg=f"Cannot read config {path}", cause=e, context={"path": str(path)}) from e

        try:
            parsed = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigError(code=EXIT_CONFIG, msg=f"Invalid YAML in {path}", cause=e, context={"path": str(path)}) from e

        if parsed is None:
            logger.debug("Config %s is empty", path)
            return {}
        if not isinstance(parsed, dict):
            raise ConfigError(
                code=EXIT_CONFIG,
                msg=f"Top-level config must be a mapping: {path}",
                context={"path": str(path), "type": type(parsed).__name__},
            )
        return {_norm_key(k): v for k, v in parsed.items()}

    @staticmethod
    def load_many(logger: logging.Logger, paths: Iterable[Path]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for p in paths:
            merged = _deep_merge(merged, Config.load_one(logger, p))
            logger.debug("Loaded config %s", p)
        return merged

    @staticmethod
    def apply_as_defaults(logger: logging.Logger, parser: argparse.ArgumentParser, conf: Dict[str, Any]) -> None:
        """
        Use config values as parser defaults so explicit CLI flags still win.
        Unknown keys are ignored (logged at debug).
        """
        if not conf:
            return
        known = {a.dest for a in parser._actions}
        defaults: Dict[str, Any] = {}
        for k, v in conf.items():
            key = _norm_key(k)
            if key in known:
                defaults[key] = v
            else:
                logger.debug("Ignoring unknown config key: %s", k)
        if defaults:
            parser.set_defaults(**defaults)
