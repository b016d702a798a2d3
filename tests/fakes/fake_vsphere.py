# SPDX-License-Identifier: LGPL-3.0-or-later
"""
In-memory stand-ins for pyVmomi managed objects and the VsphereApi adapter.
"""
from types import SimpleNamespace


class FakeMO:
    """Managed object: `_wsdlName` / `_moId` like pyVmomi, plus arbitrary properties."""

    def __init__(self, wsdl, moid, name, **props):
        self._wsdlName = wsdl
        self._moId = moid
        self.name = name
        self.parent = None
        for k, v in props.items():
            setattr(self, k, v)

    def __repr__(self):
        return f"FakeMO({self._wsdlName}:{self._moId}:{self.name})"


def folder(moid, name, children=()):
    f = FakeMO("Folder", moid, name, childEntity=[])
    for child in children:
        add_child(f, child)
    return f


def add_child(parent, child):
    if child is not None:
        child.parent = parent
    parent.childEntity.append(child)
    return child


def host(moid, name, *, connected=True, version="7.0.3", license="VMware ESXi 7.0 Enterprise Plus",
         datastores=(), hbas=()):
    return FakeMO(
        "HostSystem",
        moid,
        name,
        runtime=SimpleNamespace(connectionState="connected" if connected else "disconnected"),
        config=SimpleNamespace(
            product=SimpleNamespace(version=version, licenseProductName=license),
            storageDevice=SimpleNamespace(hostBusAdapter=list(hbas)),
        ),
        datastore=[FakeMO("Datastore", f"datastore-{i}", ds) for i, ds in enumerate(datastores)],
    )


def compute_resource(moid, name):
    """Standalone host container inside vCenter (a leaf, like ComputeResource)."""
    return FakeMO("ComputeResource", moid, name)


def cluster(moid, name, hosts=()):
    c = FakeMO("ClusterComputeResource", moid, name, host=list(hosts))
    for h in hosts:
        h.parent = c
    return c


def hba(device, wsdl="HostInternetScsiHba"):
    return FakeMO(wsdl, device, device, device=device)


def datacenter(moid, name, host_folder_children=()):
    dc = FakeMO("Datacenter", moid, name)
    dc.hostFolder = folder(f"{moid}-host", "host", host_folder_children)
    dc.hostFolder.parent = dc
    return dc


class FakeVsphereApi:
    """
    VsphereApi look-alike. `inventory` maps a type name to its managed
    objects; `fail_with` makes connect() raise.
    """

    def __init__(self, host, user, password, *, about=None, inventory=None, fail_with=None):
        self.host = host
        self.user = user
        self.password = password
        self.about = about or SimpleNamespace(
            version="7.0.3", licenseProductName="VMware ESXi 7.0 Enterprise Plus", apiType="HostAgent"
        )
        self.inventory = inventory if inventory is not None else {}
        self.fail_with = fail_with
        self.connect_calls = 0
        self.connected = False

    def connect(self):
        self.connect_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.connected = True

    def disconnect(self):
        self.connected = False

    def service_content(self):
        return SimpleNamespace(about=self.about)

    def find_all(self, type_name, properties=None):
        return list(self.inventory.get(type_name, []))

    def find_one(self, type_name, moref_id, properties=None):
        for obj in self.find_all(type_name):
            if obj._moId == moref_id:
                return obj
        return None

    def find_by_name(self, type_name, name, properties=None):
        for obj in self.find_all(type_name):
            if obj.name == name:
                return obj
        return None


class FakeVsphereFactory:
    """
    Handle factory recording every build. Per-server behaviour comes from
    `servers`: {server: {"about": ..., "inventory": ..., "password": "..."}}.
    A configured password that doesn't match makes connect() fail with an
    InvalidLogin-looking error.
    """

    def __init__(self, servers=None, *, fail_with=None):
        self.servers = servers or {}
        self.fail_with = fail_with
        self.built = []

    def __call__(self, server, user, secret):
        spec = self.servers.get(server, {})
        fail = self.fail_with
        expected = spec.get("password")
        if fail is None and expected is not None and secret.reveal() != expected:
            fail = RuntimeError("vim.fault.InvalidLogin: Cannot complete login due to an incorrect user name or password.")
        api = FakeVsphereApi(
            server, user, secret, about=spec.get("about"), inventory=spec.get("inventory"), fail_with=fail
        )
        self.built.append(api)
        return api

    @property
    def connect_calls(self):
        return sum(a.connect_calls for a in self.built)
