# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/connection/model.py
"""
Connection profiles.

Three flat variants share a small surface: name, type, is_primary,
is_valid(), storage_backed, uri, to_record() and from_record().
EsxConnection and HvConnection are persisted by the ConnectionStore;
KvmConnection is the implicit local hypervisor and is never written.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple
from urllib.parse import quote

from ..core.secret import Secret
from ..core.utils import U


class ConnectionType(str, Enum):
    ESX = "esx"
    HYPERV = "hv"
    KVM = "kvm"

    @property
    def extension(self) -> str:
        if self is ConnectionType.KVM:
            raise ValueError("local connections have no storage extension")
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "ConnectionType":
        if isinstance(value, ConnectionType):
            return value
        v = str(value or "").strip().lower()
        aliases = {"esx": cls.ESX, "vmware": cls.ESX, "hv": cls.HYPERV, "hyperv": cls.HYPERV,
                   "hyper-v": cls.HYPERV, "kvm": cls.KVM, "local": cls.KVM}
        try:
            return aliases[v]
        except KeyError:
            raise ValueError(f"unknown connection type: {value!r}") from None


class EsxHostType:
    STANDALONE = "stand-alone"
    CLUSTER = "cluster"
    VCENTER = "vcenter"

    ALL = (STANDALONE, CLUSTER, VCENTER)


class OffloadMethod:
    ISCSI = "iscsi"
    NFS = "nfs"


STANDALONE_DATACENTER = "ha-datacenter"
LOCAL_CONNECTION_NAME = "local"
LOCAL_CONNECTION_URI = "qemu:///system"

WINRM_HTTP_PORT = 5985
WINRM_HTTPS_PORT = 5986

_VERSION_PART_RE = re.compile(r"\d+")


def version_tuple(version: Optional[str]) -> Tuple[int, ...]:
    """'6.7 build-123' -> (6, 7, 0); unknown versions sort lowest."""
    parts = [int(p) for p in _VERSION_PART_RE.findall((version or "").split(" ")[0])][:3]
    if not parts:
        return ()
    return tuple(parts + [0] * (3 - len(parts)))


def _opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v)
    return s if s != "" else None


@dataclass
class _ConnectionBase:
    name: str
    is_primary: bool = False

    type: ClassVar[ConnectionType]
    storage_backed: ClassVar[bool] = True
    # Fields never written to disk as-is.
    _secret_fields: ClassVar[Tuple[str, ...]] = ()

    def is_valid(self) -> bool:  # pragma: no cover - overridden
        raise NotImplementedError

    @property
    def uri(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError

    @property
    def host(self) -> Optional[str]:  # pragma: no cover - overridden
        raise NotImplementedError

    def secrets(self) -> Tuple[Secret, ...]:
        out = []
        for name in self._secret_fields:
            s = getattr(self, name, None)
            if s:
                out.append(s)
        return tuple(out)

    def to_record(self) -> Dict[str, Any]:
        """
        Field dict for the store. Secret fields stay wrapped; the store
        decides how they are encoded.
        """
        rec: Dict[str, Any] = {"type": self.type.value}
        for f in fields(self):
            rec[f.name] = getattr(self, f.name)
        return rec

    @classmethod
    def from_record(cls, data: Dict[str, Any], *, name: Optional[str] = None):
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name in data:
                kwargs[f.name] = data[f.name]
        if name is not None and not kwargs.get("name"):
            kwargs["name"] = name
        for s in cls._secret_fields:
            if s in kwargs:
                kwargs[s] = Secret.coerce(kwargs[s])
        kwargs["is_primary"] = bool(kwargs.get("is_primary", False))
        return cls(**kwargs)


@dataclass
class EsxConnection(_ConnectionBase):
    user: Optional[str] = None
    password: Optional[Secret] = None
    host_type: Optional[str] = None
    esx_host_path: Optional[str] = None
    vcenter_host: Optional[str] = None
    datacenter_path: Optional[str] = None
    cluster_path: Optional[str] = None
    cluster_id: Optional[str] = None
    host_id: Optional[str] = None
    offload_method: str = OffloadMethod.NFS
    iscsi_hba: Optional[str] = None
    datastore: Optional[str] = None
    esx_host_version: Optional[str] = None
    esx_host_license_product_name: Optional[str] = None
    vcenter_host_version: Optional[str] = None
    vcenter_host_license_product_name: Optional[str] = None

    type: ClassVar[ConnectionType] = ConnectionType.ESX
    _secret_fields: ClassVar[Tuple[str, ...]] = ("password",)

    def __post_init__(self) -> None:
        self.password = Secret.coerce(self.password)
        if not self.offload_method:
            self.offload_method = OffloadMethod.NFS

    @property
    def esx_host(self) -> str:
        return U.basename(self.esx_host_path)

    @property
    def datacenter(self) -> str:
        return U.basename(self.datacenter_path)

    @property
    def cluster(self) -> str:
        return U.basename(self.cluster_path)

    @property
    def primary_host(self) -> str:
        """vCenter host when there is one, the ESX host otherwise."""
        return self.vcenter_host or self.esx_host

    @property
    def host(self) -> Optional[str]:
        return self.primary_host

    @property
    def is_standalone(self) -> bool:
        return self.host_type == EsxHostType.STANDALONE

    def is_valid(self) -> bool:
        """
        Minimum data needed to reach the ESX host or vCenter.

        Does not guarantee VM creation will work; datastore and HBA names
        are only checked for iSCSI offload.
        """
        if not self.user or not self.password:
            return False
        if self.host_type not in EsxHostType.ALL:
            return False
        if not self.esx_host:
            return False
        if self.host_type in (EsxHostType.CLUSTER, EsxHostType.VCENTER):
            if not self.vcenter_host or not self.datacenter:
                return False
            if self.host_type == EsxHostType.CLUSTER and not self.cluster:
                return False

        if self.offload_method == OffloadMethod.NFS:
            return True
        if self.offload_method == OffloadMethod.ISCSI:
            return bool(self.datastore) and bool(self.iscsi_hba)
        return False

    @property
    def uri(self) -> str:
        if not self.is_valid():
            return ""
        if self.vcenter_host:
            dc = quote(self.datacenter_path or "", safe="")
            if self.cluster:
                return "vpx://%s/%s/%s/%s?no_verify=1&auto_answer=1" % (
                    self.vcenter_host, dc, quote(self.cluster_path or "", safe=""), self.esx_host,
                )
            return "vpx://%s/%s/%s?no_verify=1&auto_answer=1" % (self.vcenter_host, dc, self.esx_host_path)
        return "esx://%s?no_verify=1&auto_answer=1" % self.esx_host

    def supports_vnc(self) -> bool:
        # VNC was removed from ESX 7.0
        return version_tuple(self.esx_host_version) < (7, 0, 0)

    def supports_wmks(self) -> bool:
        # 5.5/6.0 use a ticket mechanism we don't handle
        return version_tuple(self.esx_host_version) >= (6, 5, 0)

    def to_dict(self) -> Dict[str, Any]:
        """UI/CLI view; keys match what set_connection_params() accepts. No password."""
        return {
            "name": self.name,
            "type": self.type.value,
            "isPrimary": self.is_primary,
            "uri": self.uri,
            "connectionParams": {
                "server": self.esx_host_path if self.is_standalone else self.vcenter_host,
                "username": self.user,
                "hostType": self.host_type,
                "esxHost": self.esx_host_path,
                "datacenter": self.datacenter_path,
                "cluster": self.cluster_path,
                "clusterId": self.cluster_id,
                "esxHostId": self.host_id,
                "offloadMethod": self.offload_method,
                "iscsiHba": self.iscsi_hba,
                "datastore": self.datastore,
                "esxHostVersion": self.esx_host_version,
                "esxHostLicenseProductName": self.esx_host_license_product_name,
                "vcenterHostVersion": self.vcenter_host_version,
                "vcenterHostLicenseProductName": self.vcenter_host_license_product_name,
                "isPrimary": self.is_primary,
            },
        }


@dataclass
class HvConnection(_ConnectionBase):
    hostname: Optional[str] = None
    user: Optional[str] = None
    password: Optional[Secret] = None
    domain: Optional[str] = None
    http: bool = True
    port: Optional[int] = None
    hypervisor_version: Optional[str] = None

    type: ClassVar[ConnectionType] = ConnectionType.HYPERV
    _secret_fields: ClassVar[Tuple[str, ...]] = ("password",)

    def __post_init__(self) -> None:
        self.password = Secret.coerce(self.password)
        self.domain = _opt_str(self.domain)
        self.http = bool(self.http)
        if self.port is not None:
            self.port = int(self.port)

    @property
    def host(self) -> Optional[str]:
        return self.hostname

    @property
    def effective_port(self) -> int:
        if self.port:
            return self.port
        return WINRM_HTTP_PORT if self.http else WINRM_HTTPS_PORT

    @property
    def transport(self) -> str:
        return "http" if self.http else "https"

    @property
    def qualified_user(self) -> str:
        if self.domain:
            return f"{self.domain}\\{self.user or ''}"
        return self.user or ""

    def is_valid(self) -> bool:
        return bool(self.hostname) and bool(self.user) and bool(self.password)

    @property
    def uri(self) -> str:
        if not self.is_valid():
            return ""
        return "hyperv://%s@%s:%d/?transport=%s" % (
            quote(self.qualified_user, safe=""), self.hostname, self.effective_port, self.transport,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "isPrimary": self.is_primary,
            "uri": self.uri,
            "connectionParams": {
                "server": self.hostname,
                "username": self.user,
                "domain": self.domain,
                "http": self.http,
                "port": self.effective_port,
                "hypervisorVersion": self.hypervisor_version,
                "isPrimary": self.is_primary,
            },
        }


@dataclass
class KvmConnection(_ConnectionBase):
    name: str = LOCAL_CONNECTION_NAME
    local_uri: str = field(default=LOCAL_CONNECTION_URI)

    type: ClassVar[ConnectionType] = ConnectionType.KVM
    storage_backed: ClassVar[bool] = False

    @property
    def host(self) -> Optional[str]:
        return "localhost"

    def is_valid(self) -> bool:
        return True

    @property
    def uri(self) -> str:
        return self.local_uri

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "isPrimary": self.is_primary,
            "uri": self.uri,
            "connectionParams": {},
        }


Connection = _ConnectionBase

CONNECTION_CLASSES = {
    ConnectionType.ESX: EsxConnection,
    ConnectionType.HYPERV: HvConnection,
    ConnectionType.KVM: KvmConnection,
}
