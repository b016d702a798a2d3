# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/remote/__init__.py
"""Remote command execution on Windows hosts."""
