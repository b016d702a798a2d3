# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/core/optional_imports.py
"""
Centralized optional imports.

The registry itself runs without any hypervisor SDK installed (tests use
fakes); the real adapters call require_*() before touching the SDK.
"""

from __future__ import annotations

# Rich library (tables, console formatting)
try:
    from rich.console import Console
    from rich.table import Table

    RICH_AVAILABLE = True
except Exception:
    Console = None  # type: ignore
    Table = None  # type: ignore
    RICH_AVAILABLE = False

# pyVmomi library (VMware vSphere API)
try:
    from pyVim.connect import Disconnect, SmartConnect
    from pyVmomi import vim

    PYVMOMI_AVAILABLE = True
except Exception:
    SmartConnect = None  # type: ignore
    Disconnect = None  # type: ignore
    vim = None  # type: ignore
    PYVMOMI_AVAILABLE = False

# libvirt-python (protocol handle for Hyper-V / local KVM)
try:
    import libvirt

    LIBVIRT_AVAILABLE = True
except Exception:
    libvirt = None  # type: ignore
    LIBVIRT_AVAILABLE = False


def require_rich() -> None:
    """Raise ImportError if Rich is not available."""
    if not RICH_AVAILABLE:
        raise ImportError(
            "Rich library is required but not installed. "
            "Install with: pip install rich"
        )

