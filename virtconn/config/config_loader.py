# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/config/config_loader.py
from __future__ import annotations

import argparse
import glob
import json
import logging
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from ..connection.model import LOCAL_CONNECTION_URI
from ..connection.store import CONNECTION_DIR_ENV, DEFAULT_CONNECTION_DIR
from ..core.utils import U
from ..remote.winexe_client import DEFAULT_WINEXE_BIN
from ..vmware.client import DEFAULT_VSPHERE_PORT

_CONFIG_SUFFIXES = (".yaml", ".yml", ".json")


class Config:
    @staticmethod
    def load_one(logger: logging.Logger, path: str) -> Dict[str, Any]:
        p = Path(path).expanduser().resolve()
        if not p.exists():
            U.die(logger, f"Config not found: {p}", 1)
        try:
            text = p.read_text(encoding="utf-8")
            if p.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            U.die(logger, f"Invalid YAML in config {p}: {e}", 1)
        except ValueError as e:
            U.die(logger, f"Invalid JSON in config {p}: {e}", 1)
        except OSError as e:
            U.die(logger, f"Failed to load config {p}: {e}", 1)
        if not isinstance(data, dict):
            U.die(logger, f"Config must be a mapping/dict: {p}", 1)
        # normalize dash keys -> underscore keys
        out: Dict[str, Any] = {}
        for k, v in data.items():
            nk = str(k).replace("-", "_")
            out[nk] = v
            if nk != k:
                logger.debug("Normalized config key: %s -> %s", k, nk)
        logger.debug("Loaded config %s:\n%s", p, U.json_dump(out))
        return out

    @staticmethod
    def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep-ish merge:
        - dict + dict => recurse
        - list => override replaces (not concatenated)
        - scalar => override replaces
        """
        out = dict(base)
        for k, v in override.items():
            if k in out and isinstance(out[k], dict) and isinstance(v, dict):
                out[k] = Config.merge_dicts(out[k], v)
            else:
                out[k] = v
        return out

    @staticmethod
    def load_many(logger: logging.Logger, paths: List[str]) -> Dict[str, Any]:
        conf: Dict[str, Any] = {}
        quiet = not getattr(sys.stderr, "isatty", lambda: False)()
        with Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            transient=True,
            disable=quiet,
        ) as progress:
            task = progress.add_task("Loading configs", total=len(paths))
            for p in paths:
                conf = Config.merge_dicts(conf, Config.load_one(logger, p))
                progress.update(task, advance=1)
        return conf

    @staticmethod
    def expand_configs(logger: logging.Logger, configs: List[str]) -> List[str]:
        """Directories expand to their *.yaml/*.yml/*.json files, globs are expanded."""
        expanded: List[str] = []
        for c in configs:
            p = Path(c).expanduser()
            if p.is_dir():
                expanded.extend(
                    str(f) for f in sorted(p.rglob("*")) if f.is_file() and f.suffix.lower() in _CONFIG_SUFFIXES
                )
            elif "*" in c or "?" in c:
                expanded.extend(sorted(glob.glob(str(p))))
            else:
                expanded.append(c)
        logger.debug("Expanded configs: %s", expanded)
        return expanded

    @staticmethod
    def apply_as_defaults(logger: logging.Logger, parser: argparse.ArgumentParser, conf: Dict[str, Any]) -> None:
        if not conf:
            return

        def apply_actions(actions: List[argparse.Action], scope: str) -> None:
            for act in actions:
                dest = getattr(act, "dest", None)
                if not dest or dest not in conf:
                    continue
                val = conf[dest]
                logger.debug("[Config:%s] default %s: %r -> %r", scope, dest, act.default, val)
                act.default = val
                if getattr(act, "required", False) and val is not None:
                    act.required = False

        apply_actions(parser._actions, "global")
        sp_action = next((a for a in parser._actions if isinstance(a, argparse._SubParsersAction)), None)
        if sp_action:
            for name, sp in sp_action.choices.items():
                apply_actions(sp._actions, f"sub:{name}")


def _as_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """
    Resolved runtime settings.

    Precedence: built-in defaults, then $VIRTCONN_CONNECTION_DIR (directory
    only), then config files, then command-line overrides.
    """
    connection_dir: str = DEFAULT_CONNECTION_DIR
    vsphere_port: int = DEFAULT_VSPHERE_PORT
    vsphere_insecure: bool = True
    winexe_bin: str = DEFAULT_WINEXE_BIN
    libvirt_local_uri: str = LOCAL_CONNECTION_URI

    @classmethod
    def from_mapping(
        cls,
        conf: Optional[Mapping[str, Any]] = None,
        *,
        env: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> "Settings":
        env = os.environ if env is None else env
        kwargs: Dict[str, Any] = {}
        if env.get(CONNECTION_DIR_ENV):
            kwargs["connection_dir"] = env[CONNECTION_DIR_ENV]
        for source in (conf or {}, overrides or {}):
            for f in fields(cls):
                if source.get(f.name) is not None:
                    kwargs[f.name] = source[f.name]

        if "vsphere_port" in kwargs:
            try:
                kwargs["vsphere_port"] = int(kwargs["vsphere_port"])
            except (TypeError, ValueError):
                raise ValueError(f"vsphere_port must be an integer, got {kwargs['vsphere_port']!r}") from None
        if "vsphere_insecure" in kwargs:
            kwargs["vsphere_insecure"] = _as_bool(kwargs["vsphere_insecure"])
        for k in ("connection_dir", "winexe_bin", "libvirt_local_uri"):
            if k in kwargs:
                kwargs[k] = str(kwargs[k])
        return cls(**kwargs)
