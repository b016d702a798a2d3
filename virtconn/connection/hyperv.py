# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/connection/hyperv.py
"""
Hyper-V connection manager.

A Hyper-V host has to be prepared over winexe before libvirt can talk to
it: WinRM must accept basic auth over an unencrypted listener, and the
MSiSCSI initiator must be running so restored LUNs can be discovered.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..core.exceptions import (
    CredentialFailure,
    CredentialVerificationFailed,
    InvalidConnectionParameters,
    RemoteBootstrapFailed,
    RemoteCommandError,
    SanitizedError,
    VirtConnError,
)
from ..core.logging_utils import log_step
from ..core.secret import Secret
from ..libvirt.handle import libvirt_handle_factory
from ..remote.winexe_client import winexe_client_factory
from .base import TypedConnectionManager
from .credentials import INVALID_CERTIFICATE_MARKER, CredentialVerificationCache
from .model import WINRM_HTTP_PORT, WINRM_HTTPS_PORT, ConnectionType, HvConnection
from .registry import ConnectionRegistry

TEST_CONNECTION_NAME = "test-connection"

QUICKCONFIG_TIMEOUT = 15

# Windows 2008 and 2012 word this differently.
WINRM_ALREADY_SET_UP = (
    "WinRM is already set up",
    "WinRM already is set up",
)

WINRM_QUICKCONFIG = "winrm quickconfig -q"
# large enough for 1920x1080 screenshots at 16 bit depth; default is 500
WINRM_MAX_ENVELOPE = 'winrm set winrm/config @{MaxEnvelopeSizekb="20000"}'
WINRM_BASIC_AUTH = 'winrm set winrm/config/service/auth @{Basic="true"}'
WINRM_ALLOW_UNENCRYPTED = 'winrm set winrm/config/service @{AllowUnencrypted="true"}'

MSISCSI_ENABLE = "Set-Service -Name MSiSCSI -StartupType Automatic"
MSISCSI_START = "Start-Service MSiSCSI"

OS_VERSION_QUERY = "[System.Environment]::OSVersion.Version.ToString()"


def _error_text(exc: BaseException) -> str:
    parts = [str(exc)]
    if isinstance(exc, VirtConnError) and exc.context:
        out = exc.context.get("output")
        if out:
            parts.append(str(out))
    return "\n".join(parts)


class HvConnectionManager(TypedConnectionManager):
    ctype = ConnectionType.HYPERV
    connection_class = HvConnection

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        *,
        cache: Optional[CredentialVerificationCache] = None,
        handle_factory=None,
        winexe_factory=None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(registry, logger=logger)
        if cache is None:
            cache = CredentialVerificationCache(
                handle_factory or libvirt_handle_factory(logger=self.logger), logger=self.logger
            )
        self.cache = cache
        self.winexe_factory = winexe_factory or winexe_client_factory(logger=self.logger)

    @staticmethod
    def is_invalid_certificate_error(exc: BaseException) -> bool:
        """
        True for an untrusted or expired WinRM certificate, either as the raw
        libvirt error or as the CredentialVerificationFailed built from it.
        """
        if isinstance(exc, CredentialVerificationFailed) and exc.reason is CredentialFailure.CERTIFICATE_UNTRUSTED:
            return True
        if INVALID_CERTIFICATE_MARKER in str(exc):
            return True
        cause = getattr(exc, "cause", None)
        return cause is not None and INVALID_CERTIFICATE_MARKER in str(cause)

    # ------------------------------------------------------------------
    # parameters / lifecycle
    # ------------------------------------------------------------------

    def set_connection_params(self, connection: HvConnection, params: Mapping[str, Any]) -> HvConnection:
        self._require_type(connection, "configure")

        missing = [k for k in ("server", "username", "password") if not params.get(k)]
        if missing:
            raise InvalidConnectionParameters(
                code=2,
                msg="Missing required connection parameters: " + ", ".join(missing),
                context={"missing": missing, "name": connection.name},
            )

        http = params.get("http")
        use_http = http if isinstance(http, bool) else True
        port = params.get("port")
        if not isinstance(port, int) or isinstance(port, bool):
            port = WINRM_HTTP_PORT if use_http else WINRM_HTTPS_PORT

        connection.hostname = str(params["server"]).strip()
        connection.user = str(params["username"]).strip()
        connection.password = Secret.coerce(params["password"])
        connection.domain = (str(params.get("domain")).strip() or None) if params.get("domain") else None
        connection.http = use_http
        connection.port = port
        return connection

    def create_and_configure(self, name: str, params: Mapping[str, Any]) -> HvConnection:
        """
        New connection with the host bootstrapped, version read and
        credentials verified. Not saved.
        """
        connection = self.create(name)
        self.set_connection_params(connection, params)
        if not connection.is_valid():
            raise InvalidConnectionParameters(code=2, msg="Invalid parameters passed.", context={"name": name})

        self.setup_remote_access(connection)
        self.set_hypervisor_version(connection)
        # libvirt needs WinRM configured first
        self.verify_credentials(connection)
        return connection

    def connect(self, params: Mapping[str, Any]) -> bool:
        """Bootstrap and verify without creating or saving anything."""
        connection = HvConnection(name=TEST_CONNECTION_NAME)
        self.set_connection_params(connection, params)
        self.setup_remote_access(connection)
        return self.verify_credentials(connection)

    def _check_failed(self, connection: HvConnection, exc: VirtConnError) -> None:
        if self.is_invalid_certificate_error(exc):
            self.logger.error("Hyper-V certificate error on %s: %s", connection.name, exc)
            return
        super()._check_failed(connection, exc)

    def save(self, connection: HvConnection) -> bool:
        self._require_type(connection, "save")
        name = connection.name
        if not connection.is_valid():
            raise InvalidConnectionParameters(
                code=2, msg=f'Cannot save connection "{name}", invalid parameters passed.', context={"name": name}
            )

        with log_step(self.logger, f"Saving Hyper-V connection {name}"):
            self.verify_credentials(connection)
            self.set_hypervisor_version(connection)
            self.registry.set_as_primary_if_first(connection)
            self.registry.persist(connection)
        return True

    # ------------------------------------------------------------------
    # remote work
    # ------------------------------------------------------------------

    def verify_credentials(self, connection: HvConnection) -> bool:
        """Live libvirt connect to the host's WinRM endpoint."""
        self.logger.debug(
            "Verifying credentials for %s (user=%s, domain=%s, uri=%s)",
            connection.name, connection.user, connection.domain, connection.uri,
        )
        self.cache.verify_credentials(connection.uri, connection.qualified_user, connection.password)
        return True

    def _winexe(self, connection: HvConnection) -> Any:
        return self.winexe_factory(connection.hostname, connection.user, connection.password, connection.domain)

    def setup_remote_access(self, connection: HvConnection) -> None:
        """
        Configure WinRM and MSiSCSI on the host. An invalid login is raised
        as-is; any other failure becomes a secret-free RemoteBootstrapFailed.
        """
        winexe = self._winexe(connection)
        secrets = [connection.user, connection.password]

        try:
            self.logger.info("Setting up WinRM service.")
            self.setup_winrm_service(winexe)
            self.logger.info("WinRM setup successful.")
        except CredentialVerificationFailed:
            raise
        except Exception as e:
            sanitized = SanitizedError.from_exception(e, secrets)
            self.logger.critical("Failed to setup WinRM service: %s", sanitized)
            raise RemoteBootstrapFailed(code=6, msg="Failed to setup WinRM service", cause=sanitized) from None

        try:
            self.logger.info("Setting up MSiSCSI service.")
            self.setup_msiscsi_service(winexe)
            self.logger.info("MSiSCSI setup successful.")
        except Exception as e:
            sanitized = SanitizedError.from_exception(e, secrets)
            self.logger.critical("Failed to setup MSiSCSI service: %s", sanitized)
            raise RemoteBootstrapFailed(code=6, msg="Failed to setup MSiSCSI service", cause=sanitized) from None

    def setup_winrm_service(self, winexe: Any) -> None:
        try:
            # first command to reach the host; the RPC port is often firewalled
            winexe.run_cli_command(WINRM_QUICKCONFIG, QUICKCONFIG_TIMEOUT)
        except (RemoteCommandError, CredentialVerificationFailed) as e:
            # quickconfig fails when WinRM is already configured
            text = _error_text(e)
            if not any(token in text for token in WINRM_ALREADY_SET_UP):
                raise
            self.logger.debug("WinRM already configured")

        winexe.run_cli_command(WINRM_MAX_ENVELOPE)
        winexe.run_cli_command(WINRM_BASIC_AUTH)
        winexe.run_cli_command(WINRM_ALLOW_UNENCRYPTED)

    def setup_msiscsi_service(self, winexe: Any) -> None:
        winexe.run_powershell_command(MSISCSI_ENABLE)
        winexe.run_powershell_command(MSISCSI_START)

    def set_hypervisor_version(self, connection: HvConnection) -> None:
        """Ask Windows directly; libvirt reports a truncated version."""
        try:
            version = (self._winexe(connection).run_powershell_command(OS_VERSION_QUERY) or "").strip()
        except Exception as e:
            sanitized = SanitizedError.from_exception(e, [connection.user, connection.password])
            raise RemoteCommandError(
                code=6,
                msg=f"Could not get Hyper-V version: {sanitized.msg}",
                context={"host": connection.hostname},
            ) from None
        connection.hypervisor_version = version
