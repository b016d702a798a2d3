# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/cli/__init__.py
