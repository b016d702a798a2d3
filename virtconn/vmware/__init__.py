# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/vmware/__init__.py
"""VMware/vSphere API access."""

from .client import VsphereApi

__all__ = ["VsphereApi"]
