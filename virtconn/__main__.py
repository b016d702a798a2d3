# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/__main__.py
from __future__ import annotations

import sys
import traceback
from typing import Optional, Sequence

from .cli.argument_parser import parse_args_with_config
from .cli.commands import run
from .core.exceptions import Fatal, VirtConnError, format_exception_for_cli


def _print_stderr(msg: str) -> None:
    print(msg, file=sys.stderr)


def _safe_log(logger, level: str, msg: str) -> None:
    """
    Best-effort logging without assuming logger exists or has a given method.
    """
    if logger is None:
        _print_stderr(msg)
        return

    fn = getattr(logger, level, None)
    if callable(fn):
        fn(msg)
    else:
        _print_stderr(msg)


def main(argv: Optional[Sequence[str]] = None) -> None:
    logger: Optional[object] = None

    # Phase 1: parse (Fatal can happen here)
    try:
        args, conf, logger = parse_args_with_config(argv)
    except Fatal as e:
        # Config loader already logged via U.die(logger, ...).
        if logger is None:
            _print_stderr(f"💥 ERROR    {e}")
        raise SystemExit(getattr(e, "code", 1))
    except KeyboardInterrupt:
        _safe_log(logger, "warning", "Interrupted by user (Ctrl+C).")
        raise SystemExit(130)

    verbose = getattr(args, "verbose", 0)

    # Phase 2: run the command
    try:
        rc = run(args, conf, logger)
    except VirtConnError as e:
        _safe_log(logger, "error", format_exception_for_cli(e, verbose=verbose))
        rc = getattr(e, "code", 1)
    except KeyboardInterrupt:
        _safe_log(logger, "warning", "Interrupted by user (Ctrl+C).")
        rc = 130
    except Exception as e:
        _safe_log(logger, "error", f"💥 UNHANDLED {type(e).__name__}: {e}")
        _safe_log(logger, "debug", traceback.format_exc())
        rc = 1

    raise SystemExit(rc)


if __name__ == "__main__":
    main()
