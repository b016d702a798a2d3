# SPDX-License-Identifier: LGPL-3.0-or-later
# virtconn/core/exceptions.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from .secret import Secret

REDACTED = "***REDACTED***"


def _safe_int(x: Any, default: int = 1) -> int:
    try:
        return int(x)
    except Exception:
        return default


def _clamp_exit_code(code: int) -> int:
    # Exit codes are typically 0..255; keep it safe and predictable.
    if code < 0:
        return 1
    if code > 255:
        return 255
    return code


def _one_line(s: str, limit: int = 600) -> str:
    s = (s or "").strip().replace("\r", " ").replace("\n", " ")
    s = " ".join(s.split())
    return s if len(s) <= limit else (s[: limit - 3] + "...")


_SECRET_KEY_PARTS = (
    "pass",
    "password",
    "passwd",
    "secret",
    "token",
    "apikey",
    "api_key",
    "auth",
    "cookie",
    "session",
    "bearer",
    "private",
    "key",
)


def _is_secret_key(k: str) -> bool:
    ks = (k or "").lower()
    return any(p in ks for p in _SECRET_KEY_PARTS)


def _redact_value(k: str, v: Any) -> Any:
    if _is_secret_key(k):
        return REDACTED
    if isinstance(v, dict):
        return {str(ik): _redact_value(str(ik), iv) for ik, iv in v.items()}
    # Secret masks itself, but never hand the object out of an error payload.
    if isinstance(v, Secret):
        return REDACTED
    return v


def _format_context_compact(ctx: Dict[str, Any]) -> str:
    # Stable order, redaction, single-line.
    parts = []
    for k in sorted(ctx.keys()):
        v = _redact_value(str(k), ctx.get(k))
        if v == REDACTED:
            parts.append(f"{k}=<redacted>")
        else:
            parts.append(f"{k}={v!r}")
    return ", ".join(parts)


def _secret_values(secrets: Iterable[Any]) -> list:
    values = []
    for s in secrets:
        if s is None:
            continue
        reveal = getattr(s, "reveal", None)
        raw = reveal() if callable(reveal) else str(s)
        if raw:
            values.append(raw)
    # Longest first so a secret that contains another is replaced whole.
    return sorted(set(values), key=len, reverse=True)


def strip_secrets(text: str, secrets: Iterable[Any]) -> str:
    """
    Replace every occurrence of each secret value in text with a fixed marker.

    Accepts Secret objects or plain strings; the surrounding message is kept
    as-is so operators still see what failed.
    """
    out = text or ""
    for raw in _secret_values(secrets):
        out = out.replace(raw, REDACTED)
    return out


@dataclass(eq=False)
class VirtConnError(Exception):
    """
    Base project error with:
      - stable fields for reporting/JSON
      - readable __str__ (what users see)
      - safe code handling (never crashes on int())
    """
    code: int = 1
    msg: str = "error"
    cause: Optional[BaseException] = None
    context: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        self.code = _clamp_exit_code(_safe_int(self.code, default=1))
        self.msg = _one_line(self.msg) or self.__class__.__name__
        if self.context is None:
            self.context = {}
        super().__init__(self.msg)
        # Some tooling inspects Exception.args directly.
        self.args = (self.msg,)

    def with_context(self, **ctx: Any) -> "VirtConnError":
        if self.context is None:
            self.context = {}
        self.context.update(ctx)
        return self

    def user_message(self, *, include_context: bool = False, include_cause: bool = False) -> str:
        """
        Human-friendly message for CLI output/logs.
        """
        base = self.msg or self.__class__.__name__
        parts = [base]

        if include_context and self.context:
            parts.append(f"[{_one_line(_format_context_compact(self.context), limit=600)}]")

        if include_cause and self.cause is not None:
            parts.append(f"(cause: {type(self.cause).__name__}: {_one_line(str(self.cause))})")

        return " ".join(parts)

    def __str__(self) -> str:
        # Default string should be clean and user-facing
        return self.user_message(include_context=False, include_cause=False)

    def to_dict(self, *, include_cause: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "code": self.code,
            "message": self.msg,
            "context": {str(k): _redact_value(str(k), v) for k, v in (self.context or {}).items()},
        }
        if include_cause and self.cause is not None:
            d["cause"] = {"type": type(self.cause).__name__, "message": _one_line(str(self.cause))}
        return d


class Fatal(VirtConnError):
    """
    User-facing fatal error (exit code should be honored by top-level main()).
    """
    pass


class VMwareError(VirtConnError):
    """
    vSphere/vCenter operation failed.
    Use for pyvmomi / SDK / ESXi errors.
    """
    pass


class DuplicateConnectionName(VirtConnError):
    pass


class UnsupportedConnectionType(VirtConnError):
    pass


class InvalidConnectionParameters(VirtConnError):
    pass


class ConnectionTypeMismatch(VirtConnError):
    """A manager was handed a connection of another backend type."""
    pass


class PersistenceFailed(VirtConnError):
    pass


class RemoteCommandError(VirtConnError):
    pass


class RemoteBootstrapFailed(VirtConnError):
    pass


class TopologyError(VirtConnError):
    pass


class TopologyObjectNotFound(TopologyError):
    pass


class CredentialFailure(str, Enum):
    INVALID_LOGIN = "invalid-login"
    HOST_UNREACHABLE = "host-unreachable"
    CERTIFICATE_UNTRUSTED = "certificate-untrusted"


@dataclass(eq=False)
class CredentialVerificationFailed(VirtConnError):
    reason: CredentialFailure = CredentialFailure.HOST_UNREACHABLE

    def to_dict(self, *, include_cause: bool = False) -> Dict[str, Any]:
        d = super().to_dict(include_cause=include_cause)
        d["reason"] = self.reason.value
        return d


class SanitizedError(VirtConnError):
    """
    Secret-free stand-in for a foreign exception.

    Keeps the original type name and message (with secrets stripped) but
    drops the original object, its args and its traceback chain.
    """

    @classmethod
    def from_exception(cls, exc: BaseException, secrets: Iterable[Any], code: int = 1) -> "SanitizedError":
        secrets = list(secrets)
        msg = strip_secrets(str(exc), secrets) or type(exc).__name__
        err = cls(code=code, msg=f"{type(exc).__name__}: {msg}")
        if isinstance(exc, VirtConnError) and exc.context:
            err.context = {k: _redact_value(k, v) for k, v in exc.context.items()}
        return err


def wrap_fatal(msg: str, exc: Optional[BaseException] = None, code: int = 1, **context: Any) -> Fatal:
    return Fatal(code=code, msg=msg, cause=exc, context=context or None)


def format_exception_for_cli(e: BaseException, *, verbose: int = 0) -> str:
    """
    One-liner output for CLI.

    verbose=0: just message
    verbose=1: message + compact context (if any)
    verbose>=2: message + context + cause
    """
    if isinstance(e, VirtConnError):
        return e.user_message(
            include_context=(verbose >= 1),
            include_cause=(verbose >= 2),
        )

    # Non-project exceptions: keep them short unless verbose
    if verbose >= 2:
        return f"{type(e).__name__}: {_one_line(str(e))}"
    return _one_line(str(e)) or type(e).__name__
