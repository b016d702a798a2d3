# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/connection/store.py
"""
On-disk profile store: one JSON document per connection.

Layout:
    <connection_dir>/<sanitized-name>.esx
    <connection_dir>/<sanitized-name>.hv

Writes go through atomic_write (temp file + os.replace, mode 0600), so a
concurrent reader sees either the old or the new profile.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.exceptions import PersistenceFailed, UnsupportedConnectionType
from ..core.file_ops import atomic_write_text, safe_unlink
from ..core.logging_utils import get_logger
from ..core.secret import Secret
from ..core.utils import U
from .model import CONNECTION_CLASSES, ConnectionType, Connection

DEFAULT_CONNECTION_DIR = "/var/lib/virtconn/connections"
CONNECTION_DIR_ENV = "VIRTCONN_CONNECTION_DIR"

_STORED_TYPES = (ConnectionType.ESX, ConnectionType.HYPERV)


def _encode_value(v: Any) -> Any:
    if isinstance(v, Secret):
        return v.reveal()
    if isinstance(v, ConnectionType):
        return v.value
    return v


class ConnectionStore:
    def __init__(
        self,
        directory: Optional[Union[str, Path]] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = get_logger(logger)
        if directory is None:
            directory = os.environ.get(CONNECTION_DIR_ENV) or DEFAULT_CONNECTION_DIR
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        """Profile directory, created on first use."""
        try:
            U.ensure_dir(self._directory)
        except OSError as e:
            raise PersistenceFailed(
                code=4,
                msg=f"Cannot create connection directory {self._directory}",
                cause=e,
                context={"path": str(self._directory)},
            ) from e
        return self._directory

    @staticmethod
    def _extension(ctype: ConnectionType) -> str:
        if ctype not in _STORED_TYPES:
            raise UnsupportedConnectionType(code=2, msg=f"{ctype.value} connections are not stored on disk")
        return ctype.extension

    def path_for(self, name: str, ctype: ConnectionType) -> Path:
        return self.directory / f"{U.sanitize_file_name(name)}.{self._extension(ctype)}"

    def existing_file(self, name: str, ctype: ConnectionType) -> Optional[Path]:
        p = self.path_for(name, ctype)
        return p if p.is_file() else None

    def list_files(self, ctype: Optional[ConnectionType] = None) -> List[Path]:
        types = [ctype] if ctype is not None else list(_STORED_TYPES)
        d = self.directory
        out: List[Path] = []
        for t in types:
            out.extend(sorted(p for p in d.glob(f"*.{self._extension(t)}") if p.is_file()))
        return out

    def load(self, path: Union[str, Path]) -> Connection:
        path = Path(path)
        ext = path.suffix.lstrip(".")
        try:
            ctype = ConnectionType(ext)
        except ValueError:
            ctype = None
        if ctype not in _STORED_TYPES:
            raise UnsupportedConnectionType(
                code=2,
                msg="Hypervisor type does not support loading from file",
                context={"path": str(path)},
            )

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceFailed(
                code=4,
                msg=f"Cannot read connection profile {path.name}",
                cause=e,
                context={"path": str(path)},
            ) from e
        if not isinstance(data, dict):
            raise PersistenceFailed(
                code=4,
                msg=f"Connection profile {path.name} is not a JSON object",
                context={"path": str(path)},
            )

        cls = CONNECTION_CLASSES[ctype]
        try:
            return cls.from_record(data, name=path.stem)
        except (TypeError, ValueError) as e:
            raise PersistenceFailed(
                code=4,
                msg=f"Malformed connection profile {path.name}",
                cause=e,
                context={"path": str(path)},
            ) from e

    def save(self, connection: Connection) -> Path:
        if not connection.storage_backed:
            raise UnsupportedConnectionType(code=2, msg=f"{connection.type.value} connections are not stored on disk")
        path = self.path_for(connection.name, connection.type)
        record: Dict[str, Any] = {k: _encode_value(v) for k, v in connection.to_record().items()}
        try:
            atomic_write_text(path, json.dumps(record, indent=2, sort_keys=True) + "\n", file_mode=0o600)
        except OSError as e:
            raise PersistenceFailed(
                code=4,
                msg=f"Cannot write connection profile {path.name}",
                cause=e,
                context={"path": str(path), "connection": connection.name},
            ) from e
        self.logger.debug("Saved connection profile %s -> %s", connection.name, path)
        return path

    def delete(self, connection: Connection) -> bool:
        if not connection.storage_backed:
            return False
        path = self.path_for(connection.name, connection.type)
        try:
            safe_unlink(path, missing_ok=True)
        except OSError as e:
            raise PersistenceFailed(
                code=4,
                msg=f"Cannot delete connection profile {path.name}",
                cause=e,
                context={"path": str(path)},
            ) from e
        self.logger.debug("Deleted connection profile %s (%s)", connection.name, path)
        return True
