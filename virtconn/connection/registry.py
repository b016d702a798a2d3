# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/connection/registry.py
"""
Type-agnostic directory of connection profiles.

The registry owns the single-primary rule across ESX and Hyper-V
profiles. When no stored profile carries the primary flag, the implicit
local KVM connection is primary.

Primary changes are a sequence of independent profile writes. Two
processes calling set_as_primary() at the same time can leave zero or two
profiles flagged; there is no cross-process lock around the sequence.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from ..core.exceptions import (
    DuplicateConnectionName,
    InvalidConnectionParameters,
    PersistenceFailed,
    UnsupportedConnectionType,
    VirtConnError,
)
from ..core.logging_utils import get_logger
from .model import (
    LOCAL_CONNECTION_URI,
    Connection,
    ConnectionType,
    EsxConnection,
    HvConnection,
    KvmConnection,
)
from .store import ConnectionStore


class ConnectionRegistry:
    def __init__(
        self,
        store: Optional[ConnectionStore] = None,
        *,
        logger: Optional[logging.Logger] = None,
        local_uri: str = LOCAL_CONNECTION_URI,
    ) -> None:
        self.logger = get_logger(logger)
        self.store = store if store is not None else ConnectionStore(logger=self.logger)
        self.local_uri = local_uri

    # ------------------------------------------------------------------
    # creation / lookup
    # ------------------------------------------------------------------

    def create(self, name: Optional[str], ctype: Union[ConnectionType, str]) -> Connection:
        """
        New, unsaved connection. Names are unique across every type,
        including the implicit local connection.
        """
        if not isinstance(name, str) or not name.strip():
            self.logger.error("Attempted to create connection with non string name")
            raise InvalidConnectionParameters(code=2, msg="Connection name must be a non-empty string")

        try:
            ctype = ConnectionType.parse(ctype)
        except ValueError as e:
            raise UnsupportedConnectionType(code=2, msg="Invalid hypervisor type", context={"type": str(ctype)}) from e

        if ctype is ConnectionType.KVM:
            return self.get_local()

        try:
            existing = self.get(name)
        except PersistenceFailed:
            # An unreadable profile still holds the name.
            existing = True
        if existing:
            self.logger.error("Attempted to create connection with existing name: %s", name)
            raise DuplicateConnectionName(code=2, msg=f"Connection {name} already exists.", context={"name": name})

        if ctype is ConnectionType.ESX:
            return EsxConnection(name=name)
        return HvConnection(name=name)

    def find(
        self,
        name: Optional[str] = None,
        ctype: Optional[Union[ConnectionType, str]] = None,
    ) -> Connection:
        """
        Always returns a usable connection:

          1. the stored profile called `name`
          2. a blank connection of `ctype`
          3. the primary profile
          4. the local connection

        Whatever is picked falls back to local if it is not valid.
        """
        resolved: Optional[Connection] = None

        if name:
            try:
                resolved = self.get(name)
            except VirtConnError as e:
                self.logger.debug("Cannot use connection %s, falling back: %s", name, e)

        if resolved is None and ctype is not None:
            try:
                ctype = ConnectionType.parse(ctype)
            except ValueError as e:
                raise UnsupportedConnectionType(
                    code=2, msg="Invalid hypervisor type", context={"type": str(ctype)}
                ) from e
            if ctype is ConnectionType.KVM:
                resolved = self.get_local()
            elif ctype is ConnectionType.ESX:
                resolved = EsxConnection(name=name or "")
            else:
                resolved = HvConnection(name=name or "")

        if resolved is None:
            resolved = self.get_primary()

        local = self.get_local()
        if resolved is None or not resolved.is_valid():
            resolved = local
        return resolved

    def get(self, name: str) -> Optional[Connection]:
        """ESX profile, then Hyper-V profile, then the local connection."""
        for ctype in (ConnectionType.ESX, ConnectionType.HYPERV):
            path = self.existing_connection_file(name, ctype)
            if path is not None:
                return self.load(path)

        local = self.get_local()
        if local.name == name:
            return local
        return None

    def get_all(self) -> List[Connection]:
        """
        Every valid stored profile, ESX first. Unreadable and incomplete
        profiles are skipped. Re-reads the directory on every call.
        """
        out: List[Connection] = []
        for path in self.all_connection_files():
            try:
                connection = self.load(path)
            except VirtConnError as e:
                self.logger.debug("Skipping unreadable connection profile %s: %s", path, e)
                continue
            if connection.is_valid():
                out.append(connection)
            else:
                self.logger.debug("Skipping incomplete connection profile %s", path)
        return out

    def get_local(self) -> KvmConnection:
        return KvmConnection(local_uri=self.local_uri)

    def get_primary(self) -> Optional[Connection]:
        for connection in self.get_all():
            if connection.is_primary:
                return connection
        return None

    def is_local_primary(self) -> bool:
        return not any(c.is_primary for c in self.get_all())

    def get_local_view(self) -> KvmConnection:
        """Local connection with is_primary reflecting is_local_primary()."""
        local = self.get_local()
        local.is_primary = self.is_local_primary()
        return local

    # ------------------------------------------------------------------
    # files
    # ------------------------------------------------------------------

    def existing_connection_file(self, name: str, ctype: Union[ConnectionType, str]) -> Optional[Path]:
        return self.store.existing_file(name, ConnectionType.parse(ctype))

    def all_connection_files(self, ctype: Optional[Union[ConnectionType, str]] = None) -> List[Path]:
        return self.store.list_files(ConnectionType.parse(ctype) if ctype is not None else None)

    def load(self, path: Union[str, Path]) -> Connection:
        return self.store.load(path)

    def persist(self, connection: Connection) -> bool:
        if not connection.storage_backed:
            return False
        self.store.save(connection)
        return True

    # ------------------------------------------------------------------
    # primary bookkeeping
    # ------------------------------------------------------------------

    def set_as_primary(self, target: Connection) -> None:
        """
        Clear the flag on every other primary profile, then flag `target`.

        Passing the local connection clears every flag, which makes local
        primary again.
        """
        for existing in self.get_all():
            if not existing.is_primary:
                continue
            if existing.type is target.type and existing.name == target.name:
                continue
            existing.is_primary = False
            self.persist(existing)
            self.logger.info("Connection %s is no longer primary", existing.name)

        if not target.storage_backed:
            target.is_primary = True
            self.logger.info("Local connection is now primary")
            return

        target.is_primary = True
        self.persist(target)
        self.logger.info("Connection %s is now primary", target.name)

    def set_as_primary_if_first(self, target: Connection) -> bool:
        """Flag `target` (in memory only) when no stored profile exists yet."""
        if self.get_all():
            return False
        target.is_primary = True
        self.logger.debug("Connection %s is the first one, flagging as primary", target.name)
        return True

    def set_first_as_primary(self) -> bool:
        """Promote the first profile when profiles exist but none is primary."""
        existing = self.get_all()
        if not existing or any(c.is_primary for c in existing):
            return False
        promoted = existing[0]
        promoted.is_primary = True
        self.persist(promoted)
        self.logger.info("Connection %s promoted to primary", promoted.name)
        return True

    def delete(self, connection: Connection) -> bool:
        was_primary = connection.is_primary
        if connection.storage_backed:
            self.store.delete(connection)
            self.logger.info("Deleted connection %s", connection.name)
        if was_primary:
            self.set_first_as_primary()
        return True
