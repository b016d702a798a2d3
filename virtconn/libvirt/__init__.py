# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/libvirt/__init__.py
"""libvirt handles for Hyper-V and the local hypervisor."""
