# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/remote/winexe_client.py
from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import time
from dataclasses import dataclass
from typing import List, Optional

from ..core.exceptions import (
    CredentialFailure,
    CredentialVerificationFailed,
    RemoteCommandError,
    strip_secrets,
)
from ..core.logging_utils import get_logger
from ..core.secret import Secret
from ..core.utils import U

DEFAULT_WINEXE_BIN = "winexe"
DEFAULT_TIMEOUT = 120

_LOGON_FAILURE_MARKERS = ("NT_STATUS_LOGON_FAILURE", "NT_STATUS_ACCESS_DENIED")


@dataclass(frozen=True)
class WinexeResult:
    rc: int
    stdout: str
    stderr: str
    argv: List[str]
    seconds: float

    @property
    def output(self) -> str:
        return "\n".join(x for x in (self.stdout.strip(), self.stderr.strip()) if x)


class WinexeClient:
    """
    One-shot remote command execution on a Windows host through winexe.

    Credentials travel in a temporary 0600 authentication file passed with
    -A; nothing secret ever lands on argv (argv is logged).
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: object,
        domain: Optional[str] = None,
        *,
        winexe_bin: str = DEFAULT_WINEXE_BIN,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.host = host
        self.user = user
        self.password = Secret.coerce(password) or Secret("")
        self.domain = domain or None
        self.winexe_bin = winexe_bin
        self.logger = get_logger(logger)

    def __repr__(self) -> str:
        return f"WinexeClient(host={self.host!r}, user={self.user!r}, domain={self.domain!r})"

    # ----------------------------
    # public
    # ----------------------------

    def run_cli_command(self, cmd: str, timeout: Optional[int] = None) -> str:
        return self._run(["cmd.exe", "/c", cmd], timeout=timeout)

    def run_powershell_command(self, cmd: str, timeout: Optional[int] = None) -> str:
        return self._run(["powershell.exe", "-NonInteractive", "-NoProfile", "-Command", cmd], timeout=timeout)

    # ----------------------------
    # internals
    # ----------------------------

    def _auth_file_text(self) -> str:
        lines = [f"username = {self.user}", f"password = {self.password.reveal()}"]
        if self.domain:
            lines.append(f"domain = {self.domain}")
        return "\n".join(lines) + "\n"

    def _argv(self, auth_file: str, remote: List[str]) -> List[str]:
        return [self.winexe_bin, "-A", auth_file, f"//{self.host}", subprocess.list2cmdline(remote)]

    def _run(self, remote: List[str], *, timeout: Optional[int]) -> str:
        fd, auth_file = tempfile.mkstemp(prefix=".winexe-auth.", text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self._auth_file_text())
            argv = self._argv(auth_file, remote)
            res = self._exec(argv, timeout=timeout or DEFAULT_TIMEOUT)
        finally:
            try:
                os.unlink(auth_file)
            except FileNotFoundError:
                pass

        if res.rc != 0:
            self._raise_on_failure(res, remote)
        return res.stdout

    def _exec(self, argv: List[str], *, timeout: int) -> WinexeResult:
        t0 = time.monotonic()
        try:
            cp = U.run_cmd(self.logger, argv, check=False, capture=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise RemoteCommandError(
                code=6,
                msg=f"Remote command on {self.host} timed out after {timeout}s",
                context={"host": self.host},
            ) from e
        except OSError as e:
            raise RemoteCommandError(
                code=6,
                msg=f"Cannot run {self.winexe_bin}: {e}",
                context={"host": self.host},
            ) from e
        return WinexeResult(
            rc=int(cp.returncode or 0),
            stdout=cp.stdout or "",
            stderr=cp.stderr or "",
            argv=list(argv),
            seconds=time.monotonic() - t0,
        )

    def _raise_on_failure(self, res: WinexeResult, remote: List[str]) -> None:
        output = strip_secrets(res.output, [self.password])
        if any(m in output for m in _LOGON_FAILURE_MARKERS):
            raise CredentialVerificationFailed(
                code=3,
                msg="Failed to connect to the host. Invalid login credentials provided.",
                context={"host": self.host, "user": self.user},
                reason=CredentialFailure.INVALID_LOGIN,
            )
        raise RemoteCommandError(
            code=6,
            msg=f"Remote command failed on {self.host} (rc={res.rc}): {output}",
            context={"host": self.host, "command": remote[0], "output": output},
        )


def winexe_client_factory(*, winexe_bin: str = DEFAULT_WINEXE_BIN, logger: Optional[logging.Logger] = None):
    def _make(host: str, user: str, password: Secret, domain: Optional[str] = None) -> WinexeClient:
        return WinexeClient(host, user, password, domain, winexe_bin=winexe_bin, logger=logger)

    return _make
