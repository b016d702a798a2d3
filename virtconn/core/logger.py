# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import datetime as _dt
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from .secret import MASK, Secret

# Optional: colors
try:
    from termcolor import colored as _colored  # type: ignore
except Exception:  # pragma: no cover
    _colored = None

_LEVEL_EMOJI = {
    "DEBUG": "🔍",
    "INFO": "✅",
    "WARNING": "⚠️",
    "ERROR": "💥",
    "CRITICAL": "🧨",
}
_LEVEL_COLOR = {
    "DEBUG": "blue",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red",
}


def _is_tty(stream: Any = None) -> bool:
    stream = stream if stream is not None else sys.stderr
    try:
        return bool(stream.isatty())
    except Exception:
        return False


def _supports_unicode() -> bool:
    """
    Best-effort check: if the stream encoding can't handle emoji, degrade gracefully.
    """
    try:
        enc = getattr(sys.stderr, "encoding", None) or "utf-8"
        "✅".encode(enc)
        return True
    except Exception:
        return False


def c(
    text: str,
    color: Optional[str] = None,
    attrs: Optional[List[str]] = None,
    *,
    enable: bool = True,
) -> str:
    """Colorize text if termcolor is available and enabled."""
    if not enable or _colored is None or not color:
        return text
    try:
        return _colored(text, color=color, attrs=attrs or [])
    except Exception:
        return text


# ---------------------------------------------------------------------------
# Secret redaction
# ---------------------------------------------------------------------------

def _mask_arg(v: Any) -> Any:
    if isinstance(v, Secret):
        return MASK
    if isinstance(v, dict):
        return {k: _mask_arg(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return type(v)(_mask_arg(x) for x in v)
    return v


class SecretRedactingFilter(logging.Filter):
    """
    Replaces Secret objects found in a record's msg/args with the mask.

    Secret already renders as the mask through %s, but a dict or tuple arg
    would otherwise be formatted through repr() of a container we don't own.
    Extra raw strings registered via add() are stripped from the final message.
    """

    def __init__(self, name: str = "") -> None:
        super().__init__(name)
        self._raw: List[str] = []

    def add(self, secret: Any) -> None:
        raw = secret.reveal() if isinstance(secret, Secret) else str(secret or "")
        if raw and raw not in self._raw:
            self._raw.append(raw)
            self._raw.sort(key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, Secret):
            record.msg = MASK
        if record.args:
            if isinstance(record.args, dict):
                record.args = _mask_arg(record.args)
            else:
                record.args = tuple(_mask_arg(a) for a in record.args)
        if self._raw:
            msg = record.getMessage()
            for raw in self._raw:
                msg = msg.replace(raw, MASK)
            record.msg = msg
            record.args = ()
        return True


# ---------------------------------------------------------------------------
# Style
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LogStyle:
    color: bool = True
    show_ms: bool = False
    show_src: bool = False  # module:line
    show_pid: bool = False
    show_logger: bool = False
    utc: bool = False
    indent_exceptions: bool = True
    exception_indent: int = 2
    align_level: int = 8
    unicode: bool = True


class EmojiFormatter(logging.Formatter):
    def __init__(self, style: LogStyle):
        super().__init__()
        self._style = style

    def _now(self, created: float) -> str:
        dt = (
            _dt.datetime.fromtimestamp(created, tz=_dt.timezone.utc)
            if self._style.utc
            else _dt.datetime.fromtimestamp(created)
        )
        return dt.strftime("%H:%M:%S.%f")[:-3] if self._style.show_ms else dt.strftime("%H:%M:%S")

    def _emoji(self, levelname: str) -> str:
        if not self._style.unicode:
            return "·"
        return _LEVEL_EMOJI.get(levelname, "•")

    def _prefix_bits(self, record: logging.LogRecord) -> str:
        bits: List[str] = []
        if self._style.show_pid:
            bits.append(f"pid={os.getpid()}")
        if self._style.show_logger:
            bits.append(record.name)
        if self._style.show_src:
            bits.append(f"{record.module}:{record.lineno}")
        return (" [" + " ".join(bits) + "]") if bits else ""

    def _format_exception_block(self, record: logging.LogRecord, color_ok: bool) -> str:
        exc_text = self.formatException(record.exc_info) if record.exc_info else ""
        if not exc_text:
            return ""
        if not self._style.indent_exceptions:
            out = "\n" + exc_text
            return c(out, "red", enable=color_ok)

        indent = " " * max(0, int(self._style.exception_indent))
        indented = "\n".join(indent + ln for ln in exc_text.splitlines())
        return "\n" + c(indented, "red", enable=color_ok)

    def format(self, record: logging.LogRecord) -> str:
        ts = self._now(record.created)
        emoji = self._emoji(record.levelname)

        lvl = record.levelname
        msg = record.getMessage()

        color_ok = bool(self._style.color and _is_tty() and _colored is not None)

        lvl = c(lvl, _LEVEL_COLOR.get(record.levelname), enable=color_ok)
        if record.levelno >= logging.WARNING:
            msg = c(msg, _LEVEL_COLOR.get(record.levelname), attrs=["bold"], enable=color_ok)

        line = f"{ts} {emoji} {lvl:<{self._style.align_level}}{self._prefix_bits(record)} {msg}"
        line += self._format_exception_block(record, color_ok)
        return line


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class Log:
    @staticmethod
    def _level_from_flags(verbose: int, quiet: int) -> int:
        """
        quiet=0: INFO; -q: WARNING; -qq: ERROR; -vv: DEBUG.
        Quiet wins over verbose if both are set.
        """
        if quiet >= 2:
            return logging.ERROR
        if quiet == 1:
            return logging.WARNING
        if verbose >= 2:
            return logging.DEBUG
        return logging.INFO

    @staticmethod
    def ok(logger: logging.Logger, msg: str, *args: Any) -> None:
        logger.info("✅ " + msg, *args)

    @staticmethod
    def warn(logger: logging.Logger, msg: str, *args: Any) -> None:
        logger.warning("⚠️  " + msg, *args)

    @staticmethod
    def setup(
        verbose: int = 0,
        log_file: Optional[str] = None,
        *,
        quiet: int = 0,
        color: Optional[bool] = None,
        utc: bool = False,
        logger_name: str = "virtconn",
    ) -> logging.Logger:
        """
        Configure and return the project's logger.

        Every handler carries a SecretRedactingFilter; the file handler gets
        a colourless style with source locations.
        """
        logger = logging.getLogger(logger_name)
        logger.propagate = False

        level = Log._level_from_flags(verbose, quiet)
        logger.setLevel(level)

        if color is None:
            color = True

        unicode_ok = _supports_unicode()
        style = LogStyle(
            color=bool(color),
            show_ms=bool(verbose >= 3),
            show_src=bool(verbose >= 3),
            show_pid=bool(verbose >= 2),
            utc=bool(utc),
            unicode=bool(unicode_ok),
        )

        for h in list(logger.handlers):
            logger.removeHandler(h)
            try:
                h.close()
            except Exception:
                pass

        redactor = SecretRedactingFilter()

        sh = logging.StreamHandler(stream=sys.stderr)
        sh.setLevel(level)
        sh.setFormatter(EmojiFormatter(style))
        sh.addFilter(redactor)
        logger.addHandler(sh)

        if log_file:
            fp = Path(log_file).expanduser().resolve()
            fp.parent.mkdir(parents=True, exist_ok=True)
            file_style = LogStyle(
                color=False,
                show_ms=True,
                show_src=True,
                show_pid=True,
                show_logger=True,
                utc=style.utc,
                unicode=style.unicode,
            )
            fh = logging.FileHandler(fp, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(EmojiFormatter(file_style))
            fh.addFilter(redactor)
            logger.addHandler(fh)

        logger.debug("Logger initialized (level=%s, pid=%s)", logging.getLevelName(level), os.getpid())
        return logger

    @staticmethod
    def redactor(logger: logging.Logger) -> Optional[SecretRedactingFilter]:
        """Return the SecretRedactingFilter installed by setup(), if any."""
        for h in logger.handlers:
            for f in h.filters:
                if isinstance(f, SecretRedactingFilter):
                    return f
        return None
