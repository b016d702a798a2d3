# SPDX-License-Identifier: LGPL-3.0-or-later
"""Registry-level rules: unique names across types and a single primary."""
from __future__ import annotations

import random

import pytest
from virtconn.connection.model import (
    ConnectionType,
    EsxConnection,
    EsxHostType,
    HvConnection,
    KvmConnection,
)
from virtconn.connection.registry import ConnectionRegistry
from virtconn.connection.store import ConnectionStore
from virtconn.core.exceptions import (
    DuplicateConnectionName,
    InvalidConnectionParameters,
    UnsupportedConnectionType,
)


@pytest.fixture
def registry(connection_dir, logger):
    return ConnectionRegistry(ConnectionStore(connection_dir, logger=logger), logger=logger)


def _esx(name, **kw):
    return EsxConnection(
        name=name, user="root", password="pw", host_type=EsxHostType.STANDALONE,
        esx_host_path=f"{name}.lab", datacenter_path="ha-datacenter", **kw
    )


def _hv(name, **kw):
    return HvConnection(name=name, hostname=f"{name}.corp", user="admin", password="pw", **kw)


def _primaries(registry):
    return [c.name for c in registry.get_all() if c.is_primary]


@pytest.mark.unit
class TestCreate:
    def test_create_returns_blank_unsaved(self, registry):
        conn = registry.create("lab", ConnectionType.ESX)
        assert isinstance(conn, EsxConnection)
        assert conn.name == "lab"
        assert registry.get_all() == []

    def test_create_hv_by_alias(self, registry):
        assert isinstance(registry.create("hv", "hyperv"), HvConnection)

    def test_create_kvm_returns_local(self, registry):
        assert isinstance(registry.create("anything", ConnectionType.KVM), KvmConnection)

    def test_duplicate_across_types(self, registry):
        registry.persist(_esx("shared"))
        with pytest.raises(DuplicateConnectionName):
            registry.create("shared", ConnectionType.HYPERV)
        with pytest.raises(DuplicateConnectionName):
            registry.create("shared", ConnectionType.ESX)

    def test_local_name_reserved(self, registry):
        with pytest.raises(DuplicateConnectionName):
            registry.create("local", ConnectionType.ESX)

    def test_unreadable_profile_still_holds_name(self, registry):
        (registry.store.directory / "broken.hv").write_text("{nope", encoding="utf-8")
        with pytest.raises(DuplicateConnectionName):
            registry.create("broken", ConnectionType.ESX)

    @pytest.mark.parametrize("name", [None, "", "   ", 42])
    def test_bad_names(self, registry, name):
        with pytest.raises(InvalidConnectionParameters):
            registry.create(name, ConnectionType.ESX)

    def test_unknown_type(self, registry):
        with pytest.raises(UnsupportedConnectionType):
            registry.create("x", "xen")


@pytest.mark.unit
class TestLookup:
    def test_get_prefers_esx(self, registry):
        registry.persist(_esx("dup"))
        # written directly, bypassing create()
        registry.persist(_hv("dup"))
        assert isinstance(registry.get("dup"), EsxConnection)

    def test_get_local_and_missing(self, registry):
        assert isinstance(registry.get("local"), KvmConnection)
        assert registry.get("nope") is None

    def test_get_all_skips_broken_and_incomplete(self, registry):
        registry.persist(_esx("good"))
        registry.persist(HvConnection(name="incomplete", hostname="h"))
        (registry.store.directory / "broken.esx").write_text("[]", encoding="utf-8")

        assert [c.name for c in registry.get_all()] == ["good"]

    def test_get_all_re_reads_directory(self, registry):
        assert registry.get_all() == []
        registry.store.save(_hv("late"))
        assert [c.name for c in registry.get_all()] == ["late"]

    def test_find_by_name(self, registry):
        registry.persist(_hv("hv1"))
        assert registry.find("hv1").name == "hv1"

    def test_find_falls_back_to_primary_then_local(self, registry):
        assert isinstance(registry.find(), KvmConnection)
        registry.persist(_esx("p", is_primary=True))
        assert registry.find().name == "p"
        assert registry.find("missing").name == "p"

    def test_find_blank_type_falls_back_to_local(self, registry):
        registry.persist(_esx("p", is_primary=True))
        # a blank connection is never valid
        assert isinstance(registry.find(ctype=ConnectionType.ESX), KvmConnection)
        assert isinstance(registry.find(ctype=ConnectionType.KVM), KvmConnection)

    def test_find_unreadable_profile_falls_back(self, registry):
        (registry.store.directory / "broken.esx").write_text("{not json", encoding="utf-8")
        assert isinstance(registry.find("broken"), KvmConnection)

        registry.persist(_hv("p", is_primary=True))
        assert registry.find("broken").name == "p"

    def test_find_unknown_type(self, registry):
        with pytest.raises(UnsupportedConnectionType):
            registry.find(ctype="bogus")

    def test_local_view(self, registry):
        assert registry.get_local_view().is_primary
        registry.persist(_esx("p", is_primary=True))
        assert not registry.get_local_view().is_primary
        assert not registry.is_local_primary()

    def test_custom_local_uri(self, connection_dir):
        reg = ConnectionRegistry(ConnectionStore(connection_dir), local_uri="qemu:///session")
        assert reg.get_local().uri == "qemu:///session"


@pytest.mark.unit
class TestPrimary:
    def test_set_as_primary_clears_others(self, registry):
        registry.persist(_esx("a", is_primary=True))
        b = _hv("b")
        registry.persist(b)

        registry.set_as_primary(b)

        assert _primaries(registry) == ["b"]

    def test_set_local_primary_clears_all(self, registry):
        registry.persist(_esx("a", is_primary=True))
        registry.set_as_primary(registry.get_local())

        assert _primaries(registry) == []
        assert registry.is_local_primary()

    def test_set_as_primary_idempotent(self, registry):
        a = _esx("a", is_primary=True)
        registry.persist(a)
        registry.set_as_primary(a)
        assert _primaries(registry) == ["a"]

    def test_set_as_primary_if_first(self, registry):
        first = _esx("first")
        assert registry.set_as_primary_if_first(first)
        assert first.is_primary
        # in memory only
        assert registry.get_all() == []

        registry.persist(first)
        second = _hv("second")
        assert not registry.set_as_primary_if_first(second)
        assert not second.is_primary

    def test_set_first_as_primary(self, registry):
        assert not registry.set_first_as_primary()
        registry.persist(_hv("z"))
        registry.persist(_esx("y"))

        assert registry.set_first_as_primary()
        # ESX profiles list first
        assert _primaries(registry) == ["y"]
        assert not registry.set_first_as_primary()

    def test_delete_primary_promotes_next(self, registry):
        a = _esx("a", is_primary=True)
        registry.persist(a)
        registry.persist(_hv("b"))

        registry.delete(a)

        assert [c.name for c in registry.get_all()] == ["b"]
        assert _primaries(registry) == ["b"]

    def test_delete_last_makes_local_primary(self, registry):
        a = _esx("a", is_primary=True)
        registry.persist(a)
        registry.delete(a)

        assert registry.get_all() == []
        assert registry.is_local_primary()
        assert isinstance(registry.find(), KvmConnection)

    def test_delete_non_primary_keeps_primary(self, registry):
        registry.persist(_esx("a", is_primary=True))
        b = _hv("b")
        registry.persist(b)
        registry.delete(b)
        assert _primaries(registry) == ["a"]

    def test_single_primary_after_random_operations(self, registry):
        rnd = random.Random(1234)
        names = [f"c{i}" for i in range(6)]
        for _ in range(200):
            op = rnd.choice(["add", "primary", "delete", "local"])
            existing = {c.name: c for c in registry.get_all()}
            name = rnd.choice(names)
            if op == "add" and name not in existing:
                conn = _esx(name) if rnd.random() < 0.5 else _hv(name)
                registry.set_as_primary_if_first(conn)
                registry.persist(conn)
            elif op == "primary" and name in existing:
                registry.set_as_primary(existing[name])
            elif op == "delete" and name in existing:
                registry.delete(existing[name])
            elif op == "local":
                registry.set_as_primary(registry.get_local())

            assert len(_primaries(registry)) <= 1
            assert isinstance(registry.find(), (EsxConnection, HvConnection, KvmConnection))
