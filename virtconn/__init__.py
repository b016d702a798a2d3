# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/__init__.py
"""
virtconn - hypervisor connection registry

Stores ESX/vCenter and Hyper-V connection profiles, verifies their
credentials against the live host, and tracks which connection is
primary (the implicit local KVM connection when none is flagged).

Usage as a library:

    from virtconn import ConnectionRegistry, EsxConnectionManager

    registry = ConnectionRegistry()
    esx = EsxConnectionManager(registry)
    conn = esx.create("lab-esx")
    esx.set_connection_params(conn, {"server": "esx01", "username": "root",
                                     "password": "...", "hostType": "stand-alone",
                                     "datastore": "ds1"})
    esx.save(conn)
    registry.find().uri
"""

__version__ = "0.1.0"

from .connection.esx import EsxConnectionManager
from .connection.hyperv import HvConnectionManager
from .connection.model import (
    ConnectionType,
    EsxConnection,
    HvConnection,
    KvmConnection,
)
from .connection.registry import ConnectionRegistry
from .connection.store import ConnectionStore
from .core.secret import Secret

__all__ = [
    "__version__",
    "ConnectionRegistry",
    "ConnectionStore",
    "ConnectionType",
    "EsxConnection",
    "EsxConnectionManager",
    "HvConnection",
    "HvConnectionManager",
    "KvmConnection",
    "Secret",
]
