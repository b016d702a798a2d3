# SPDX-License-Identifier: LGPL-3.0-or-later
import logging
import os
import sys
from pathlib import Path

import pytest

_THIS_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _THIS_DIR.parent

if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

os.environ.setdefault("PYTHONPATH", str(_REPO_ROOT))


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: fast tests without external services")
    config.addinivalue_line("markers", "security: secret handling and redaction tests")


@pytest.fixture
def logger():
    lg = logging.getLogger("virtconn_test")
    lg.setLevel(logging.DEBUG)
    return lg


@pytest.fixture
def connection_dir(tmp_path, monkeypatch):
    d = tmp_path / "connections"
    monkeypatch.delenv("VIRTCONN_CONNECTION_DIR", raising=False)
    return d
