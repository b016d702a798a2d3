# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

from types import SimpleNamespace

import pytest
import virtconn.vmware.client as client_mod
from virtconn.core.exceptions import VMwareError
from virtconn.vmware.client import VsphereApi, vsphere_api_factory


class InvalidLogin(Exception):
    msg = "Cannot complete login due to an incorrect user name or password."


class FakeView:
    def __init__(self, objs):
        self.view = objs
        self.destroyed = False

    def Destroy(self):
        self.destroyed = True


class FakeSI:
    def __init__(self, objs):
        self.views = []
        self.objs = objs
        self.content = SimpleNamespace(
            about=SimpleNamespace(apiType="VirtualCenter"),
            rootFolder="root",
            viewManager=SimpleNamespace(CreateContainerView=self._create),
        )

    def _create(self, root, types, recursive):
        v = FakeView(self.objs.get(types[0], []))
        self.views.append(v)
        return v

    def RetrieveContent(self):
        return self.content


@pytest.fixture
def pyvmomi(monkeypatch):
    state = SimpleNamespace(connect_kwargs=None, disconnected=[], error=None, si=None)
    host_type = type("HostSystem", (), {})
    objs = {host_type: [SimpleNamespace(_moId="host-1", name="esx01"), SimpleNamespace(_moId="host-2", name="esx02")]}

    def smart_connect(**kw):
        state.connect_kwargs = kw
        if state.error is not None:
            raise state.error
        state.si = FakeSI(objs)
        return state.si

    monkeypatch.setattr(client_mod, "PYVMOMI_AVAILABLE", True)
    monkeypatch.setattr(client_mod, "SmartConnect", smart_connect)
    monkeypatch.setattr(client_mod, "Disconnect", lambda si: state.disconnected.append(si))
    monkeypatch.setattr(client_mod, "vim", SimpleNamespace(HostSystem=host_type))
    return state


@pytest.mark.unit
class TestVsphereApi:
    def test_connect_reveals_password_only_to_sdk(self, pyvmomi, logger):
        api = VsphereApi("vc01", "admin", "Pa55!", logger=logger)
        api.connect()

        assert pyvmomi.connect_kwargs["pwd"] == "Pa55!"
        assert pyvmomi.connect_kwargs["port"] == 443
        assert "Pa55!" not in repr(api)

    def test_connect_failure_keeps_fault_name(self, pyvmomi, logger):
        pyvmomi.error = InvalidLogin()
        api = VsphereApi("vc01", "admin", "bad", logger=logger)

        with pytest.raises(VMwareError) as ei:
            api.connect()

        assert "InvalidLogin" in str(ei.value)
        assert ei.value.__cause__ is None
        assert api.si is None

    def test_find(self, pyvmomi, logger):
        api = VsphereApi("vc01", "admin", "pw", logger=logger)
        api.connect()

        assert [h.name for h in api.find_all("HostSystem")] == ["esx01", "esx02"]
        assert api.find_one("HostSystem", "host-2").name == "esx02"
        assert api.find_by_name("HostSystem", "esx01")._moId == "host-1"
        assert api.find_one("HostSystem", "host-9") is None
        assert all(v.destroyed for v in pyvmomi.si.views)

    def test_unknown_type(self, pyvmomi, logger):
        api = VsphereApi("vc01", "admin", "pw", logger=logger)
        api.connect()
        with pytest.raises(VMwareError):
            api.find_all("Martian")

    def test_not_connected(self, pyvmomi, logger):
        with pytest.raises(VMwareError):
            VsphereApi("vc01", "admin", "pw", logger=logger).service_content()

    def test_context_manager_disconnects(self, pyvmomi, logger):
        with VsphereApi("vc01", "admin", "pw", logger=logger) as api:
            assert api.service_content().about.apiType == "VirtualCenter"
        assert len(pyvmomi.disconnected) == 1
        assert api.si is None

    def test_missing_pyvmomi(self, monkeypatch, logger):
        monkeypatch.setattr(client_mod, "PYVMOMI_AVAILABLE", False)
        with pytest.raises(VMwareError):
            VsphereApi("vc01", "admin", "pw", logger=logger).connect()

    def test_factory(self, logger):
        api = vsphere_api_factory(port=8443, insecure=False, logger=logger)("vc01", "admin", "pw")
        assert api.port == 8443
        assert api.insecure is False
        assert api.password.reveal() == "pw"
