# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/cli/argument_parser.py
from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, Optional, Sequence, Tuple

from ..config.config_loader import Config
from ..connection.model import EsxHostType, OffloadMethod
from ..core.logger import c
from ..core.utils import U
from .help_texts import EPILOG_EXAMPLES, YAML_EXAMPLE


class HelpFormatter(argparse.RawDescriptionHelpFormatter, argparse.ArgumentDefaultsHelpFormatter):
    """Combines raw description formatting with default value display in help."""


def _build_epilog() -> str:
    return (
        c("Examples:\n", "cyan", ["bold"])
        + c(EPILOG_EXAMPLES, "cyan")
        + "\n"
        + c("YAML config:\n", "cyan", ["bold"])
        + c(YAML_EXAMPLE, "cyan")
    )


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group(c("Config / logging", "cyan", ["bold"]))
    g.add_argument(
        "--config",
        action="append",
        default=[],
        help="YAML/JSON config file, directory or glob (repeatable; later files override earlier ones).",
    )
    g.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug).")
    g.add_argument("-q", "--quiet", action="count", default=0, help="Less logging (-qq for errors only).")
    g.add_argument("--log-file", dest="log_file", default=None, help="Also write logs to this file.")
    g.add_argument("--dump-config", action="store_true", help="Print the merged config and exit.")
    g.add_argument("--dump-args", action="store_true", help="Print the parsed arguments and exit.")


def _add_runtime_settings(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group(c("Runtime settings", "cyan", ["bold"]))
    g.add_argument("--connection-dir", dest="connection_dir", default=None, help="Directory holding connection profiles.")
    g.add_argument("--vsphere-port", dest="vsphere_port", type=int, default=None, help="vSphere API port.")
    g.add_argument(
        "--vsphere-verify",
        dest="vsphere_insecure",
        action="store_false",
        default=None,
        help="Verify vSphere TLS certificates (default: unverified).",
    )
    g.add_argument("--winexe-bin", dest="winexe_bin", default=None, help="winexe binary used to prepare Hyper-V hosts.")
    g.add_argument("--local-uri", dest="libvirt_local_uri", default=None, help="libvirt URI of the local KVM connection.")


def _add_credentials(p: argparse.ArgumentParser, *, server_required: bool = True) -> None:
    p.add_argument("--server", required=server_required, help="ESX host, vCenter or Hyper-V host address.")
    p.add_argument("--username", required=True)
    p.add_argument(
        "--password-env",
        dest="password_env",
        default=None,
        help="Read the password from this environment variable instead of prompting.",
    )


def _add_esx_params(p: argparse.ArgumentParser) -> None:
    g = p.add_argument_group(c("ESX profile", "cyan", ["bold"]))
    g.add_argument("--host-type", dest="host_type", choices=list(EsxHostType.ALL), default=EsxHostType.STANDALONE)
    g.add_argument("--esx-host", dest="esx_host", default=None, help="ESX host folder path (vcenter/cluster).")
    g.add_argument("--datacenter", default=None, help="Datacenter folder path (vcenter/cluster).")
    g.add_argument("--cluster", default=None, help="Cluster folder path (cluster).")
    g.add_argument("--cluster-id", dest="cluster_id", default=None)
    g.add_argument("--esx-host-id", dest="esx_host_id", default=None)
    g.add_argument(
        "--offload-method",
        dest="offload_method",
        choices=[OffloadMethod.NFS, OffloadMethod.ISCSI],
        default=OffloadMethod.NFS,
    )
    g.add_argument("--iscsi-hba", dest="iscsi_hba", default=None, help="iSCSI adapter device (iscsi offload).")
    g.add_argument("--datastore", default=None, help="Datastore used for restored disks.")


def _add_edit_params(p: argparse.ArgumentParser) -> None:
    p.add_argument("--new-name", dest="new_name", default=None, help="Rename the connection.")
    p.add_argument("--server", default=None)
    p.add_argument("--username", default=None)
    p.add_argument(
        "--password-env",
        dest="password_env",
        default=None,
        help="Read a new password from this environment variable (default: keep the stored one).",
    )
    g = p.add_argument_group(c("ESX profile", "cyan", ["bold"]))
    g.add_argument("--host-type", dest="host_type", choices=list(EsxHostType.ALL), default=None)
    g.add_argument("--esx-host", dest="esx_host", default=None)
    g.add_argument("--datacenter", default=None)
    g.add_argument("--cluster", default=None)
    g.add_argument("--cluster-id", dest="cluster_id", default=None)
    g.add_argument("--esx-host-id", dest="esx_host_id", default=None)
    g.add_argument("--offload-method", dest="offload_method", choices=[OffloadMethod.NFS, OffloadMethod.ISCSI], default=None)
    g.add_argument("--iscsi-hba", dest="iscsi_hba", default=None)
    g.add_argument("--datastore", default=None)
    g = p.add_argument_group(c("Hyper-V profile", "cyan", ["bold"]))
    g.add_argument("--domain", default=None)
    g.add_argument("--https", dest="http", action="store_false", default=None, help="Use the WinRM HTTPS listener.")
    g.add_argument("--http", dest="http", action="store_true", default=None, help="Use the WinRM HTTP listener.")
    g.add_argument("--port", type=int, default=None)


def _add_commands(p: argparse.ArgumentParser) -> None:
    sub = p.add_subparsers(dest="cmd", metavar="COMMAND")
    sub.required = True

    sub.add_parser("list", help="List every connection, local included.", formatter_class=HelpFormatter)

    sp = sub.add_parser("show", help="Show one connection as JSON (no password).", formatter_class=HelpFormatter)
    sp.add_argument("name")

    sub.add_parser("primary", help="Show the connection used when none is named.", formatter_class=HelpFormatter)

    sp = sub.add_parser("create-esx", help="Verify and save an ESX/vCenter connection.", formatter_class=HelpFormatter)
    sp.add_argument("name")
    _add_credentials(sp)
    _add_esx_params(sp)
    sp.add_argument("--primary", action="store_true", help="Make the new connection primary.")

    sp = sub.add_parser("create-hyperv", help="Prepare, verify and save a Hyper-V connection.", formatter_class=HelpFormatter)
    sp.add_argument("name")
    _add_credentials(sp)
    sp.add_argument("--domain", default=None)
    sp.add_argument("--https", action="store_true", help="Use the WinRM HTTPS listener.")
    sp.add_argument("--port", type=int, default=None, help="WinRM port (default 5985 http, 5986 https).")
    sp.add_argument(
        "--skip-setup",
        dest="skip_setup",
        action="store_true",
        help="Do not configure WinRM/MSiSCSI on the host over winexe.",
    )
    sp.add_argument("--primary", action="store_true", help="Make the new connection primary.")

    sp = sub.add_parser(
        "edit",
        help="Change or rename a stored connection; unset options keep their stored values.",
        formatter_class=HelpFormatter,
    )
    sp.add_argument("name")
    _add_edit_params(sp)

    sp = sub.add_parser("check", help="Re-verify a stored connection against its host.", formatter_class=HelpFormatter)
    sp.add_argument("name")

    sp = sub.add_parser("delete", help="Delete a stored connection.", formatter_class=HelpFormatter)
    sp.add_argument("name")

    sp = sub.add_parser("set-primary", help="Make a connection primary (local clears every flag).", formatter_class=HelpFormatter)
    sp.add_argument("name")

    sub.add_parser("refresh", help="Re-verify and re-save every stored connection.", formatter_class=HelpFormatter)

    sp = sub.add_parser("datacenters", help="List the datacenters of a vCenter.", formatter_class=HelpFormatter)
    _add_credentials(sp)

    sp = sub.add_parser("clusters", help="List the clusters of a datacenter.", formatter_class=HelpFormatter)
    _add_credentials(sp)
    sp.add_argument("--datacenter-id", dest="datacenter_id", required=True)

    sp = sub.add_parser("cluster-hosts", help="List the connected hosts of a cluster.", formatter_class=HelpFormatter)
    _add_credentials(sp)
    sp.add_argument("--cluster-id", dest="cluster_id", required=True)

    sp = sub.add_parser("vcenter-hosts", help="List connected vCenter hosts outside clusters.", formatter_class=HelpFormatter)
    _add_credentials(sp)

    sp = sub.add_parser("host-options", help="List iSCSI adapters and datastores of a host.", formatter_class=HelpFormatter)
    _add_credentials(sp)
    sp.add_argument("--host-id", dest="host_id", required=True)
    sp.add_argument("--host-type", dest="host_type", choices=list(EsxHostType.ALL), required=True)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="virtconn",
        description=c("virtconn: ESX, Hyper-V and local KVM connection registry", "green", ["bold"]),
        formatter_class=HelpFormatter,
        epilog=_build_epilog(),
    )
    _add_global_config_logging(p)
    _add_runtime_settings(p)
    _add_commands(p)
    return p


def _build_preparser() -> argparse.ArgumentParser:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", action="append", default=[])
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("-q", "--quiet", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    pre.add_argument("--dump-config", action="store_true")
    pre.add_argument("--dump-args", action="store_true")
    return pre


def _load_merged_config(logger: Any, cfgs: Sequence[str]) -> Dict[str, Any]:
    if not cfgs:
        return {}
    expanded = Config.expand_configs(logger, list(cfgs))
    return Config.load_many(logger, expanded)


def parse_args_with_config(
    argv: Optional[Sequence[str]] = None,
    logger: Any = None,
) -> Tuple[argparse.Namespace, Dict[str, Any], Any]:
    """
    Flow:
      Phase 0: parse ONLY global flags needed to locate config/logging
      Phase 1: load+merge config files
      Phase 2: apply config as defaults onto the parser
      Phase 3: full parse to get final args
    """
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    parser = build_parser()

    pre = _build_preparser()
    args0, _rest = pre.parse_known_args(argv)

    if logger is None:
        from ..core.logger import Log  # local import to avoid cycles

        logger = Log.setup(
            getattr(args0, "verbose", 0),
            getattr(args0, "log_file", None),
            quiet=getattr(args0, "quiet", 0),
        )

    conf = _load_merged_config(logger, getattr(args0, "config", None) or [])

    if getattr(args0, "dump_config", False):
        print(U.json_dump(conf))
        raise SystemExit(0)

    # Apply config as defaults so CLI can override.
    Config.apply_as_defaults(logger, parser, conf)

    args = parser.parse_args(argv)

    if getattr(args0, "dump_args", False):
        print(U.json_dump(vars(args)))
        raise SystemExit(0)

    return args, conf, logger
