# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/connection/base.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..core.exceptions import (
    ConnectionTypeMismatch,
    InvalidConnectionParameters,
    VirtConnError,
)
from ..core.logging_utils import get_logger
from .model import Connection, ConnectionType
from .registry import ConnectionRegistry


class TypedConnectionManager:
    """
    Per-backend surface shared by the ESX and Hyper-V managers. Subclasses
    set `ctype`/`connection_class` and implement set_connection_params()
    and save().
    """

    ctype: ConnectionType
    connection_class: type

    def __init__(self, registry: Optional[ConnectionRegistry] = None, *, logger: Optional[logging.Logger] = None):
        self.logger = get_logger(logger)
        self.registry = registry if registry is not None else ConnectionRegistry(logger=self.logger)

    # subclasses
    def set_connection_params(self, connection: Connection, params: Mapping[str, Any]) -> Connection:  # pragma: no cover
        raise NotImplementedError

    def save(self, connection: Connection) -> bool:  # pragma: no cover
        raise NotImplementedError

    def _require_type(self, connection: Any, action: str) -> None:
        if not isinstance(connection, self.connection_class):
            name = getattr(connection, "name", "?")
            self.logger.error("Cannot %s connection %s: not an %s", action, name, self.connection_class.__name__)
            raise ConnectionTypeMismatch(
                code=2,
                msg=f'Cannot {action} connection "{name}", not an instance of {self.connection_class.__name__}.',
                context={"name": name},
            )

    def create(self, name: str) -> Connection:
        return self.registry.create(name, self.ctype)

    def get(self, name: str) -> Optional[Connection]:
        """Stored profile of this type, None if absent; an incomplete profile is an error."""
        path = self.registry.existing_connection_file(name, self.ctype)
        if path is None:
            return None
        connection = self.registry.load(path)
        if not connection.is_valid():
            self.logger.error("Specified connection is invalid: %s", name)
            raise InvalidConnectionParameters(
                code=2, msg=f'Specified connection "{name}" is invalid.', context={"name": name}
            )
        return connection

    def get_all(self) -> List[Connection]:
        out: List[Connection] = []
        for path in self.registry.all_connection_files(self.ctype):
            try:
                connection = self.registry.load(path)
            except VirtConnError as e:
                self.logger.debug("Skipping unreadable connection profile %s: %s", path, e)
                continue
            if connection.is_valid():
                out.append(connection)
        return out

    def exists(self, name: str) -> bool:
        try:
            return self.get(name) is not None
        except VirtConnError:
            return False

    def delete(self, connection: Connection) -> bool:
        self._require_type(connection, "delete")
        return self.registry.delete(connection)

    def refresh_all(self) -> List[str]:
        """
        Re-verify and re-save every profile of this type. A failing profile
        is logged and skipped; returns the names that failed.
        """
        failed: List[str] = []
        for connection in self.get_all():
            try:
                self.save(connection)
            except Exception as e:
                failed.append(connection.name)
                self.logger.error("Error refreshing connection %s: %s", connection.name, e)
        return failed

    def copy(self, profile: Mapping[str, Any]) -> bool:
        """
        Create and save a new connection from a profile description:
        {"name": ..., "connectionParams": {..., "isPrimary": bool}}.
        """
        params: Dict[str, Any] = dict(profile.get("connectionParams") or {})
        connection = self.create(profile.get("name"))
        self.set_connection_params(connection, params)
        want_primary = bool(params.get("isPrimary", False))
        saved = self.save(connection)
        if want_primary:
            self.registry.set_as_primary(connection)
        return saved

    def connect(self, params: Mapping[str, Any]) -> bool:  # pragma: no cover
        raise NotImplementedError

    def connection_params(self, connection: Connection) -> Dict[str, Any]:
        """set_connection_params()-style view of a stored connection, password included."""
        params = dict(connection.to_dict()["connectionParams"])
        params.pop("isPrimary", None)
        params["password"] = connection.password
        return params

    def _require_existing(self, name: str) -> Connection:
        connection = self.get(name)
        if connection is None:
            raise InvalidConnectionParameters(
                code=2, msg=f'Connection "{name}" does not exist.', context={"name": name}
            )
        return connection

    def edit(self, old_name: str, name: str, params: Mapping[str, Any]) -> bool:
        """
        Replace profile `old_name` with `name` built from `params`.

        The new parameters are validated and connected before the old
        profile is touched. The primary flag carries over; if saving the
        replacement fails the old profile is written back.
        """
        connection = self._require_existing(old_name)
        was_primary = connection.is_primary

        self.set_connection_params(self.connection_class(name=name), params)
        if name != old_name:
            self.create(name)  # name must be free
        self.connect(params)

        self.registry.delete(connection)
        try:
            replacement = self.create(name)
            self.set_connection_params(replacement, params)
            self.save(replacement)
        except Exception:
            self.logger.error("Could not save edited connection %s, restoring %s", name, old_name)
            connection.is_primary = False
            self.registry.persist(connection)
            if was_primary:
                self.registry.set_as_primary(connection)
            raise

        if was_primary:
            self.registry.set_as_primary(replacement)
        if name != old_name:
            self.logger.info("Renamed connection %s to %s", old_name, name)
        return True

    def check(self, name: str) -> bool:
        """Re-verify a stored connection against its host without saving."""
        connection = self._require_existing(name)
        try:
            return self.connect(self.connection_params(connection))
        except VirtConnError as e:
            self._check_failed(connection, e)
            raise

    def _check_failed(self, connection: Connection, exc: VirtConnError) -> None:
        self.logger.error("Connection check failed for %s: %s", connection.name, exc)
