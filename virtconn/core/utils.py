# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/core/utils.py
from __future__ import annotations

import json
import logging
import re
import shlex
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import Fatal

_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


class U:
    @staticmethod
    def die(logger: logging.Logger, msg: str, code: int = 1) -> None:
        logger.error(msg)
        raise Fatal(code, msg)

    @staticmethod
    def ensure_dir(p: Path, mode: int = 0o700) -> None:
        p.mkdir(mode=mode, parents=True, exist_ok=True)

    @staticmethod
    def json_dump(obj: Any) -> str:
        try:
            return json.dumps(obj, indent=2, sort_keys=True, default=str)
        except Exception:
            return repr(obj)

    @staticmethod
    def sanitize_file_name(name: str) -> str:
        """
        Map a connection name onto a safe file stem.

        Anything outside [A-Za-z0-9._-] collapses to a single underscore and
        leading dots are dropped so a profile never becomes a hidden file.
        """
        s = _UNSAFE_FILENAME_RE.sub("_", (name or "").strip())
        s = s.lstrip(".")
        return s or "_"

    @staticmethod
    def basename(path: Optional[str]) -> str:
        if not path:
            return ""
        return str(path).rstrip("/").rsplit("/", 1)[-1]

    @staticmethod
    def _pretty_cmd(cmd: List[str]) -> str:
        return " ".join(shlex.quote(x) for x in cmd)

    @staticmethod
    def run_cmd(
        logger: logging.Logger,
        cmd: List[str],
        *,
        check: bool = True,
        capture: bool = False,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[int] = None,
        cwd: Optional[Union[str, Path]] = None,
        input_text: Optional[str] = None,
        fatal: bool = False,
    ) -> subprocess.CompletedProcess:
        """
        Run a command.

        - capture=True uses subprocess.run(capture_output=True, text=True)
        - fatal=True wraps failures into Fatal (otherwise re-raises subprocess exceptions)

        argv is logged at debug level, so callers must never put secrets on it.
        """
        pretty = U._pretty_cmd(cmd)
        logger.debug("Running: %s", pretty)

        try:
            return subprocess.run(
                cmd,
                check=check,
                capture_output=capture,
                text=True,
                env=env,
                timeout=timeout,
                cwd=str(cwd) if cwd is not None else None,
                input=input_text,
            )

        except subprocess.CalledProcessError as e:
            stdout = (e.stdout or e.output or "").strip()
            stderr = (e.stderr or "").strip()
            if stdout or stderr:
                logger.error(
                    "Command failed: %s%s%s",
                    pretty,
                    f"\nstdout:\n{stdout}" if stdout else "",
                    f"\nstderr:\n{stderr}" if stderr else "",
                )
            else:
                logger.error("Command failed: %s (no output)", pretty)

            if fatal:
                raise Fatal(e.returncode or 1, f"Command failed: {pretty}") from e
            raise

        except subprocess.TimeoutExpired as e:
            logger.error("Command timed out: %s (timeout=%ss)", pretty, timeout)
            if fatal:
                raise Fatal(124, f"Command timed out: {pretty}") from e
            raise

        except Exception as e:
            logger.error("Command error: %s (%s)", pretty, e)
            if fatal:
                raise Fatal(1, f"Command error: {pretty}: {e}") from e
            raise

