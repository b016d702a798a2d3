# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/libvirt/handle.py
from __future__ import annotations

import logging
from typing import Any, Optional

from ..core.exceptions import VirtConnError
from ..core.logging_utils import get_logger
from ..core.optional_imports import LIBVIRT_AVAILABLE, libvirt
from ..core.secret import Secret


class LibvirtConnectError(VirtConnError):
    pass


class LibvirtHandle:
    """
    libvirt connection used to prove that a hypervisor URI accepts the
    given credentials (Hyper-V over WinRM, or the local qemu:///system).

    `host` is the URI; host/user/password let the credential cache tell
    whether an existing handle can be reused.
    """

    def __init__(
        self,
        uri: str,
        user: Optional[str] = None,
        password: Any = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.host = uri
        self.user = user
        self.password = Secret.coerce(password)
        self.logger = get_logger(logger)
        self._conn: Any = None
        self._last_error: Optional[str] = None

    @property
    def uri(self) -> str:
        return self.host

    def __repr__(self) -> str:
        return f"LibvirtHandle(uri={self.host!r}, user={self.user!r})"

    def _auth_cb(self, creds: Any, _opaque: Any) -> int:
        for cred in creds:
            if cred[0] == libvirt.VIR_CRED_AUTHNAME:
                cred[4] = self.user or ""
            elif cred[0] == libvirt.VIR_CRED_PASSPHRASE:
                cred[4] = self.password.reveal() if self.password else ""
        return 0

    def connect(self) -> None:
        if not LIBVIRT_AVAILABLE:
            raise LibvirtConnectError(code=7, msg="libvirt-python not installed. Install: pip install libvirt-python")
        self.close()
        try:
            if self.user is None and self.password is None:
                self._conn = libvirt.open(self.host)
            else:
                auth = [[libvirt.VIR_CRED_AUTHNAME, libvirt.VIR_CRED_PASSPHRASE], self._auth_cb, None]
                self._conn = libvirt.openAuth(self.host, auth, 0)
        except libvirt.libvirtError as e:
            self._conn = None
            self._last_error = e.get_error_message() or str(e)
        if self._conn is None:
            msg = self._last_error or f"Failed to connect to {self.host}"
            raise LibvirtConnectError(code=7, msg=msg, context={"uri": self.host})
        self._last_error = None
        self.logger.debug("libvirt connected: %s", self.host)

    def is_connected(self) -> bool:
        if self._conn is None:
            return False
        try:
            return bool(self._conn.isAlive())
        except libvirt.libvirtError as e:
            self._last_error = e.get_error_message() or str(e)
            return False

    def last_error(self) -> Optional[str]:
        return self._last_error

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except libvirt.libvirtError as e:
            self.logger.debug("libvirt close failed: %s", e)
        finally:
            self._conn = None


def libvirt_handle_factory(*, logger: Optional[logging.Logger] = None):
    """Handle factory for CredentialVerificationCache; `server` is the libvirt URI."""

    def _make(uri: str, user: str, secret: Secret) -> LibvirtHandle:
        return LibvirtHandle(uri, user, secret, logger=logger)

    return _make
