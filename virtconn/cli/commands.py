# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/cli/commands.py
from __future__ import annotations

import argparse
import getpass
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..config.config_loader import Settings
from ..connection.esx import LIST_HOST_OPTIONS, LIST_HOSTS, EsxConnectionManager
from ..connection.hyperv import HvConnectionManager
from ..connection.model import Connection, ConnectionType
from ..connection.registry import ConnectionRegistry
from ..connection.store import ConnectionStore
from ..core.exceptions import Fatal, wrap_fatal
from ..core.logger import Log
from ..core.optional_imports import Console, Table, require_rich
from ..core.secret import Secret
from ..core.utils import U
from ..remote.winexe_client import winexe_client_factory
from ..vmware.client import vsphere_api_factory


@dataclass
class Context:
    settings: Settings
    logger: logging.Logger
    registry: ConnectionRegistry
    esx: EsxConnectionManager
    hv: HvConnectionManager
    console: Any = None

    @classmethod
    def build(cls, settings: Settings, logger: logging.Logger, *, console: Any = None) -> "Context":
        store = ConnectionStore(settings.connection_dir, logger=logger)
        registry = ConnectionRegistry(store, logger=logger, local_uri=settings.libvirt_local_uri)
        esx = EsxConnectionManager(
            registry,
            api_factory=vsphere_api_factory(
                port=settings.vsphere_port, insecure=settings.vsphere_insecure, logger=logger
            ),
            logger=logger,
        )
        hv = HvConnectionManager(
            registry,
            winexe_factory=winexe_client_factory(winexe_bin=settings.winexe_bin, logger=logger),
            logger=logger,
        )
        return cls(settings, logger, registry, esx, hv, console)

    def out(self) -> Any:
        if self.console is None:
            require_rich()
            self.console = Console()
        return self.console


def read_password(args: argparse.Namespace, logger: logging.Logger) -> Secret:
    """Password from --password-env, else an interactive prompt. Registered with the log redactor."""
    var = getattr(args, "password_env", None)
    if var:
        raw = os.environ.get(var)
        if not raw:
            raise wrap_fatal(f"Environment variable {var} is not set", code=2, variable=var)
    else:
        raw = getpass.getpass(f"Password for {getattr(args, 'username', '')}: ")
    secret = Secret(raw)
    redactor = Log.redactor(logger)
    if redactor is not None:
        redactor.add(secret)
    return secret


def _lookup(ctx: Context, name: str) -> Connection:
    connection = ctx.registry.get(name)
    if connection is None:
        raise Fatal(code=2, msg=f"No such connection: {name}", context={"name": name})
    if connection.type is ConnectionType.KVM:
        return ctx.registry.get_local_view()
    return connection


def _print_table(ctx: Context, title: str, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    table = Table(title=title)
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*["" if v is None else str(v) for v in row])
    ctx.out().print(table)


# ---------------------------------------------------------------------------
# commands
# ---------------------------------------------------------------------------

def cmd_list(ctx: Context, args: argparse.Namespace) -> int:
    connections: List[Connection] = list(ctx.registry.get_all())
    connections.append(ctx.registry.get_local_view())
    _print_table(
        ctx,
        "Connections",
        ("Name", "Type", "Primary", "Host", "URI"),
        ((c.name, c.type.value, "*" if c.is_primary else "", c.host, c.uri) for c in connections),
    )
    return 0


def cmd_show(ctx: Context, args: argparse.Namespace) -> int:
    ctx.out().print_json(U.json_dump(_lookup(ctx, args.name).to_dict()))
    return 0


def cmd_primary(ctx: Context, args: argparse.Namespace) -> int:
    connection = ctx.registry.find()
    if connection.type is ConnectionType.KVM:
        connection = ctx.registry.get_local_view()
    ctx.out().print(f"{connection.name} ({connection.type.value}) {connection.uri}")
    return 0


def cmd_create_esx(ctx: Context, args: argparse.Namespace) -> int:
    params: Dict[str, Any] = {
        "server": args.server,
        "username": args.username,
        "password": read_password(args, ctx.logger),
        "hostType": args.host_type,
        "esxHost": args.esx_host,
        "datacenter": args.datacenter,
        "cluster": args.cluster,
        "clusterId": args.cluster_id,
        "esxHostId": args.esx_host_id,
        "offloadMethod": args.offload_method,
        "iscsiHba": args.iscsi_hba,
        "datastore": args.datastore,
    }
    connection = ctx.esx.create(args.name)
    ctx.esx.set_connection_params(connection, params)
    ctx.esx.save(connection)
    if args.primary:
        ctx.registry.set_as_primary(connection)
    Log.ok(ctx.logger, "Saved ESX connection %s", connection.name)
    return 0


def cmd_create_hyperv(ctx: Context, args: argparse.Namespace) -> int:
    params: Dict[str, Any] = {
        "server": args.server,
        "username": args.username,
        "password": read_password(args, ctx.logger),
        "domain": args.domain,
        "http": not args.https,
        "port": args.port,
    }
    if args.skip_setup:
        connection = ctx.hv.create(args.name)
        ctx.hv.set_connection_params(connection, params)
    else:
        connection = ctx.hv.create_and_configure(args.name, params)
    ctx.hv.save(connection)
    if args.primary:
        ctx.registry.set_as_primary(connection)
    Log.ok(ctx.logger, "Saved Hyper-V connection %s", connection.name)
    return 0


def cmd_delete(ctx: Context, args: argparse.Namespace) -> int:
    connection = _lookup(ctx, args.name)
    if not connection.storage_backed:
        raise Fatal(code=2, msg="The local connection cannot be deleted", context={"name": args.name})
    ctx.registry.delete(connection)
    Log.ok(ctx.logger, "Deleted connection %s", connection.name)
    return 0


# edit flag dest -> set_connection_params() key
_EDIT_KEYS = {
    "server": "server",
    "username": "username",
    "host_type": "hostType",
    "esx_host": "esxHost",
    "datacenter": "datacenter",
    "cluster": "cluster",
    "cluster_id": "clusterId",
    "esx_host_id": "esxHostId",
    "offload_method": "offloadMethod",
    "iscsi_hba": "iscsiHba",
    "datastore": "datastore",
    "domain": "domain",
    "http": "http",
    "port": "port",
}


def _manager(ctx: Context, connection: Connection) -> Any:
    return ctx.esx if connection.type is ConnectionType.ESX else ctx.hv


def cmd_edit(ctx: Context, args: argparse.Namespace) -> int:
    connection = _lookup(ctx, args.name)
    if not connection.storage_backed:
        raise Fatal(code=2, msg="The local connection cannot be edited", context={"name": args.name})
    manager = _manager(ctx, connection)
    params = manager.connection_params(connection)
    for dest, key in _EDIT_KEYS.items():
        value = getattr(args, dest, None)
        if value is not None:
            params[key] = value
    if args.password_env:
        params["password"] = read_password(args, ctx.logger)
    new_name = args.new_name or connection.name
    manager.edit(connection.name, new_name, params)
    Log.ok(ctx.logger, "Saved connection %s", new_name)
    return 0


def cmd_check(ctx: Context, args: argparse.Namespace) -> int:
    connection = _lookup(ctx, args.name)
    if connection.storage_backed:
        _manager(ctx, connection).check(connection.name)
    ctx.out().print(f"{connection.name}: OK")
    return 0


def cmd_set_primary(ctx: Context, args: argparse.Namespace) -> int:
    ctx.registry.set_as_primary(_lookup(ctx, args.name))
    return 0


def cmd_refresh(ctx: Context, args: argparse.Namespace) -> int:
    failed = ctx.esx.refresh_all() + ctx.hv.refresh_all()
    if failed:
        Log.warn(ctx.logger, "Could not refresh: %s", ", ".join(failed))
        return 1
    Log.ok(ctx.logger, "All connections refreshed")
    return 0


def _esx_params(ctx: Context, args: argparse.Namespace, **extra: Any) -> Dict[str, Any]:
    params = {"server": args.server, "username": args.username, "password": read_password(args, ctx.logger)}
    params.update(extra)
    return params


def cmd_datacenters(ctx: Context, args: argparse.Namespace) -> int:
    p = _esx_params(ctx, args)
    refs = ctx.esx.get_datacenters(p["server"], p["username"], p["password"])
    _print_table(ctx, "Datacenters", ("Name", "ID"), ((r.name, r.id) for r in refs))
    return 0


def cmd_clusters(ctx: Context, args: argparse.Namespace) -> int:
    p = _esx_params(ctx, args)
    refs = ctx.esx.get_datacenter_clusters(p["server"], p["username"], p["password"], args.datacenter_id)
    _print_table(ctx, "Clusters", ("Name", "ID"), ((r.name, r.id) for r in refs))
    return 0


def cmd_cluster_hosts(ctx: Context, args: argparse.Namespace) -> int:
    p = _esx_params(ctx, args)
    refs = ctx.esx.get_cluster_hosts(p["server"], p["username"], p["password"], args.cluster_id)
    _print_table(ctx, "Cluster hosts", ("Name", "ID"), ((r.name, r.id) for r in refs))
    return 0


def cmd_vcenter_hosts(ctx: Context, args: argparse.Namespace) -> int:
    names = ctx.esx.get_hypervisor_options(LIST_HOSTS, _esx_params(ctx, args))
    _print_table(ctx, "vCenter hosts", ("Path",), ((n,) for n in names))
    return 0


def cmd_host_options(ctx: Context, args: argparse.Namespace) -> int:
    options = ctx.esx.get_hypervisor_options(
        LIST_HOST_OPTIONS, _esx_params(ctx, args, hostId=args.host_id, hostType=args.host_type)
    )
    ctx.out().print_json(U.json_dump(options))
    return 0


COMMANDS: Dict[str, Callable[[Context, argparse.Namespace], int]] = {
    "list": cmd_list,
    "show": cmd_show,
    "primary": cmd_primary,
    "create-esx": cmd_create_esx,
    "create-hyperv": cmd_create_hyperv,
    "delete": cmd_delete,
    "edit": cmd_edit,
    "check": cmd_check,
    "set-primary": cmd_set_primary,
    "refresh": cmd_refresh,
    "datacenters": cmd_datacenters,
    "clusters": cmd_clusters,
    "cluster-hosts": cmd_cluster_hosts,
    "vcenter-hosts": cmd_vcenter_hosts,
    "host-options": cmd_host_options,
}


def run(args: argparse.Namespace, conf: Dict[str, Any], logger: logging.Logger, *, console: Any = None) -> int:
    overrides = {k: getattr(args, k, None) for k in Settings.__dataclass_fields__}
    settings = Settings.from_mapping(conf, overrides=overrides)
    logger.debug("Settings: %s", settings)
    ctx = Context.build(settings, logger, console=console)
    handler: Optional[Callable[[Context, argparse.Namespace], int]] = COMMANDS.get(args.cmd)
    if handler is None:
        raise Fatal(code=2, msg=f"Unknown command: {args.cmd}")
    return handler(ctx, args)
