# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/connection/credentials.py
"""
Per-manager memo of verified (server, user, secret) tuples.

A remote handle is built through the injected factory only when the
server, user or secret differs from the handle currently held; otherwise
the same handle is reconnected. A tuple that verified once is never
re-checked for the lifetime of the cache, and its handle is handed back
again on the next request.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from ..core.exceptions import (
    CredentialFailure,
    CredentialVerificationFailed,
    SanitizedError,
)
from ..core.logging_utils import get_logger
from ..core.secret import Secret

INVALID_CERTIFICATE_MARKER = "Peer's certificate wasn't OK"

_INVALID_LOGIN_MARKERS = (
    "invalidlogin",
    "incorrect user name or password",
    "authentication failed",
    "access is denied",
    "nt_status_logon_failure",
)

_FAILURE_MESSAGES = {
    CredentialFailure.INVALID_LOGIN: "Failed to connect to the host. Invalid login credentials provided.",
    CredentialFailure.CERTIFICATE_UNTRUSTED: (
        "Failed to connect to the host. The host certificate is not trusted or has expired."
    ),
    CredentialFailure.HOST_UNREACHABLE: (
        "Failed to connect to the host. Please make sure you have entered a correct host address."
    ),
}

# (server, user, secret) -> handle exposing host/user/password and connect()
HandleFactory = Callable[[str, str, Secret], Any]


def classify_failure(exc: BaseException) -> CredentialFailure:
    if isinstance(exc, CredentialVerificationFailed):
        return exc.reason
    text = f"{type(exc).__name__} {exc}"
    if INVALID_CERTIFICATE_MARKER in text:
        return CredentialFailure.CERTIFICATE_UNTRUSTED
    low = text.lower()
    if any(m in low for m in _INVALID_LOGIN_MARKERS):
        return CredentialFailure.INVALID_LOGIN
    return CredentialFailure.HOST_UNREACHABLE


def _same_handle(handle: Any, server: str, username: str, secret: Secret) -> bool:
    if handle is None:
        return False
    if getattr(handle, "host", None) != server or getattr(handle, "user", None) != username:
        return False
    current = Secret.coerce(getattr(handle, "password", None))
    return current is not None and current == secret


class CredentialVerificationCache:
    def __init__(
        self,
        factory: HandleFactory,
        *,
        logger: Optional[logging.Logger] = None,
        handle: Any = None,
    ) -> None:
        self.logger = get_logger(logger)
        self._factory = factory
        self._handle = handle
        self._verified: Dict[Tuple[str, str, Secret], Any] = {}

    @property
    def api(self) -> Any:
        """Handle used by the last verification (None before the first one)."""
        return self._handle

    def is_verified(self, server: str, username: str, secret: Any) -> bool:
        s = Secret.coerce(secret) or Secret("")
        return (server or "", username or "", s) in self._verified

    def clear(self) -> None:
        self._verified.clear()

    def verify_credentials(self, server: Optional[str], username: Optional[str], secret: Any) -> Any:
        """
        Connect once per distinct (server, user, secret) and return the handle.

        Raises CredentialVerificationFailed with the secret stripped from
        the message and the original exception dropped from the chain.
        """
        server = server or ""
        username = username or ""
        secret = Secret.coerce(secret) or Secret("")
        key = (server, username, secret)
        if key in self._verified:
            self._handle = self._verified[key]
            return self._handle

        self.logger.debug("Verifying connection credentials for %s", server)
        if not _same_handle(self._handle, server, username, secret):
            self._handle = self._factory(server, username, secret)

        try:
            self._handle.connect()
        except Exception as e:
            reason = classify_failure(e)
            if reason is CredentialFailure.INVALID_LOGIN:
                self.logger.error("Failed to connect to %s. Invalid credentials", server)
            elif reason is CredentialFailure.CERTIFICATE_UNTRUSTED:
                self.logger.error("Failed to connect to %s. Certificate not trusted", server)
            else:
                self.logger.error("Failed to connect to %s. Check address.", server)
            sanitized = SanitizedError.from_exception(e, [secret])
            self.logger.debug("Connect failure detail: %s", sanitized)
            raise CredentialVerificationFailed(
                code=3,
                msg=_FAILURE_MESSAGES[reason],
                cause=sanitized,
                context={"server": server, "user": username},
                reason=reason,
            ) from None

        self._verified[key] = self._handle
        return self._handle
