# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/connection/__init__.py
"""Connection profiles, their store, the registry and per-backend managers."""
