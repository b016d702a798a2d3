# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/vmware/client.py
"""
Thin vSphere / vCenter API adapter used for credential checks and
inventory queries. Only what the connection managers need lives here.
"""
from __future__ import annotations

import logging
import ssl
from typing import Any, List, Optional, Sequence

from ..core.exceptions import VMwareError
from ..core.logging_utils import get_logger
from ..core.optional_imports import PYVMOMI_AVAILABLE, Disconnect, SmartConnect, vim
from ..core.secret import Secret

DEFAULT_VSPHERE_PORT = 443


class VsphereApi:
    def __init__(
        self,
        host: str,
        user: str,
        password: Any,
        *,
        port: int = DEFAULT_VSPHERE_PORT,
        insecure: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.host = host
        self.user = user
        self.password = Secret.coerce(password) or Secret("")
        self.port = int(port)
        self.insecure = bool(insecure)
        self.logger = get_logger(logger)
        self.si: Any = None

    def __repr__(self) -> str:
        return f"VsphereApi(host={self.host!r}, user={self.user!r}, port={self.port})"

    def __enter__(self) -> "VsphereApi":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.disconnect()
        return False

    # Connection

    def _require_pyvmomi(self) -> None:
        if not PYVMOMI_AVAILABLE:
            raise VMwareError(code=50, msg="pyvmomi not installed. Install: pip install pyvmomi")

    def _ssl_context(self) -> ssl.SSLContext:
        """
        ESX hosts almost always present self-signed certificates, hence
        insecure=True by default (matches no_verify=1 in the libvirt URI).
        """
        if self.insecure:
            ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            return ctx
        return ssl.create_default_context()

    def connect(self) -> None:
        self._require_pyvmomi()
        if self.si is not None:
            self.disconnect()
        try:
            self.si = SmartConnect(  # type: ignore[misc]
                host=self.host,
                user=self.user,
                pwd=self.password.reveal(),
                port=self.port,
                sslContext=self._ssl_context(),
            )
        except Exception as e:
            self.si = None
            # keep the fault class name: credential classification keys on it
            raise VMwareError(
                code=50,
                msg=f"Failed to connect to vSphere: {type(e).__name__}: {getattr(e, 'msg', None) or e}",
                context={"host": self.host, "port": self.port},
            ) from None
        self.logger.debug("Connected to vSphere: %s:%s", self.host, self.port)

    def disconnect(self) -> None:
        try:
            if self.si is not None:
                Disconnect(self.si)  # type: ignore[misc]
        except Exception as e:
            self.logger.error("Error during disconnect: %s", e)
        finally:
            self.si = None

    # Queries

    def service_content(self) -> Any:
        if not self.si:
            raise VMwareError(code=50, msg="Not connected")
        try:
            return self.si.RetrieveContent()
        except Exception as e:
            raise VMwareError(code=50, msg=f"Failed to retrieve content: {e}") from e

    def _vim_type(self, type_name: str) -> Any:
        self._require_pyvmomi()
        t = getattr(vim, type_name, None)
        if t is None:
            raise VMwareError(code=50, msg=f"Unknown managed object type: {type_name}")
        return t

    def find_all(self, type_name: str, properties: Optional[Sequence[str]] = None) -> List[Any]:
        """
        All managed objects of `type_name` below the root folder.

        `properties` is accepted for interface parity; pyVmomi fetches
        properties lazily on attribute access.
        """
        content = self.service_content()
        view = content.viewManager.CreateContainerView(  # type: ignore[attr-defined]
            content.rootFolder, [self._vim_type(type_name)], True
        )
        try:
            return list(view.view)
        finally:
            try:
                view.Destroy()
            except Exception:
                pass

    def find_one(self, type_name: str, moref_id: str, properties: Optional[Sequence[str]] = None) -> Any:
        """Managed object by reference id (e.g. 'domain-c7'); None if it doesn't exist."""
        for obj in self.find_all(type_name, properties):
            if getattr(obj, "_moId", None) == moref_id:
                return obj
        return None

    def find_by_name(self, type_name: str, name: str, properties: Optional[Sequence[str]] = None) -> Any:
        for obj in self.find_all(type_name, properties):
            if getattr(obj, "name", None) == name:
                return obj
        return None


def vsphere_api_factory(
    *,
    port: int = DEFAULT_VSPHERE_PORT,
    insecure: bool = True,
    logger: Optional[logging.Logger] = None,
):
    """Handle factory for CredentialVerificationCache."""

    def _make(server: str, username: str, secret: Secret) -> VsphereApi:
        return VsphereApi(server, username, secret, port=port, insecure=insecure, logger=logger)

    return _make
