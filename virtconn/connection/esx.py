# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/connection/esx.py
"""
ESX / vCenter connection manager.

Parameter dictionaries use the keys the web form and CLI send:
server, username, password, hostType, esxHost, datacenter, cluster,
clusterId, esxHostId, offloadMethod, iscsiHba, datastore.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..core.exceptions import (
    InvalidConnectionParameters,
    TopologyObjectNotFound,
    VMwareError,
)
from ..core.logging_utils import log_step
from ..core.secret import Secret
from ..core.utils import U
from ..vmware.client import vsphere_api_factory
from . import topology
from .base import TypedConnectionManager
from .credentials import CredentialVerificationCache
from .model import (
    STANDALONE_DATACENTER,
    ConnectionType,
    EsxConnection,
    EsxHostType,
    OffloadMethod,
)
from .registry import ConnectionRegistry
from .topology import ManagedObjectRef

LIST_HOSTS = 1
LIST_HOST_OPTIONS = 2

ISCSI_HBA_TYPE = "HostInternetScsiHba"


def _param(params: Mapping[str, Any], key: str) -> Optional[str]:
    v = params.get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


class EsxConnectionManager(TypedConnectionManager):
    ctype = ConnectionType.ESX
    connection_class = EsxConnection

    LIST_HOSTS = LIST_HOSTS
    LIST_HOST_OPTIONS = LIST_HOST_OPTIONS

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        *,
        cache: Optional[CredentialVerificationCache] = None,
        api_factory=None,
        max_folder_depth: int = topology.MAX_FOLDER_DEPTH,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(registry, logger=logger)
        if cache is None:
            cache = CredentialVerificationCache(api_factory or vsphere_api_factory(logger=self.logger), logger=self.logger)
        self.cache = cache
        self.max_folder_depth = max_folder_depth

    # ------------------------------------------------------------------
    # parameters / persistence
    # ------------------------------------------------------------------

    def set_connection_params(self, connection: EsxConnection, params: Mapping[str, Any]) -> EsxConnection:
        """
        Validate `params` and copy them onto `connection`. Nothing is
        assigned unless every required key is present.
        """
        self._require_type(connection, "configure")

        missing: List[str] = []
        host_type = _param(params, "hostType")
        if host_type not in EsxHostType.ALL:
            raise InvalidConnectionParameters(
                code=2, msg=f"Unknown host type: {host_type}", context={"hostType": host_type}
            )
        for key in ("server", "username"):
            if not _param(params, key):
                missing.append(key)
        if not params.get("password"):
            missing.append("password")

        if host_type == EsxHostType.STANDALONE:
            esx_host = _param(params, "server")
            datacenter = STANDALONE_DATACENTER
            vcenter_host = None
        else:
            esx_host = _param(params, "esxHost")
            datacenter = _param(params, "datacenter")
            vcenter_host = _param(params, "server")
            if not esx_host:
                missing.append("esxHost")
            if not datacenter:
                missing.append("datacenter")

        if host_type == EsxHostType.CLUSTER:
            cluster = _param(params, "cluster")
            cluster_id = _param(params, "clusterId")
            host_id = _param(params, "esxHostId")
            if not cluster:
                missing.append("cluster")
        else:
            cluster = cluster_id = host_id = None

        method = _param(params, "offloadMethod") or OffloadMethod.NFS
        datastore = _param(params, "datastore")
        if method == OffloadMethod.NFS:
            hba = None
        else:
            # older callers send the adapter name as the method itself
            hba = _param(params, "iscsiHba") or (method if method != OffloadMethod.ISCSI else None)
            method = OffloadMethod.ISCSI
            if not hba:
                missing.append("iscsiHba")
        if not datastore:
            missing.append("datastore")

        if missing:
            raise InvalidConnectionParameters(
                code=2,
                msg="Missing required connection parameters: " + ", ".join(missing),
                context={"missing": missing, "name": connection.name},
            )

        connection.user = _param(params, "username")
        connection.password = Secret.coerce(params.get("password"))
        connection.host_type = host_type
        connection.offload_method = method
        connection.iscsi_hba = hba
        connection.datastore = datastore
        connection.esx_host_path = esx_host
        connection.datacenter_path = datacenter
        connection.vcenter_host = vcenter_host
        connection.cluster_path = cluster
        connection.cluster_id = cluster_id
        connection.host_id = host_id
        return connection

    def save(self, connection: EsxConnection) -> bool:
        self._require_type(connection, "save")
        name = connection.name
        if not connection.is_valid():
            raise InvalidConnectionParameters(
                code=2, msg=f'Cannot save connection "{name}", invalid parameters passed.', context={"name": name}
            )

        with log_step(self.logger, f"Saving ESX connection {name}"):
            self.update_connection_info(connection)
            self.registry.set_as_primary_if_first(connection)
            self.registry.persist(connection)
        return True

    # ------------------------------------------------------------------
    # credentials / host info
    # ------------------------------------------------------------------

    def verify_credentials(self, server: Optional[str], username: Optional[str], password: Any) -> Any:
        """Verified vSphere API handle for the given credentials."""
        return self.cache.verify_credentials(server, username, Secret.coerce(password))

    def connect(self, params: Mapping[str, Any]) -> bool:
        self.verify_credentials(params.get("server") or "", params.get("username") or "", params.get("password") or "")
        return True

    def _primary_host_info(self, server: str, username: str, password: Secret, key: str) -> str:
        api = self.verify_credentials(server, username, password)
        content = api.service_content()
        about = getattr(content, "about", None)
        if about is None or not hasattr(about, key):
            raise VMwareError(code=50, msg="Invalid service content provided.")
        return getattr(about, key) or ""

    def _managed_host_info(self, vserver: str, hserver: str, username: str, password: Secret, key: str) -> str:
        api = self.verify_credentials(vserver, username, password)
        host = api.find_by_name(topology.HOST, hserver, [])
        if host is None:
            raise TopologyObjectNotFound(code=5, msg=f"Could not find host {hserver}", context={"host": hserver})
        product = getattr(getattr(host, "config", None), "product", None)
        return getattr(product, key, None) or ""

    def update_connection_info(self, connection: EsxConnection) -> None:
        """Refresh version/license strings; verifies credentials on the way."""
        user = connection.user or ""
        password = connection.password or Secret("")
        server = connection.primary_host
        self.verify_credentials(server, user, password)

        if connection.is_standalone:
            esx_version = self._primary_host_info(server, user, password, "version")
            esx_license = self._primary_host_info(server, user, password, "licenseProductName")
            vc_version = None
            vc_license = None
        else:
            vc_version = self._primary_host_info(server, user, password, "version")
            vc_license = self._primary_host_info(server, user, password, "licenseProductName")
            esx_version = self._managed_host_info(server, connection.esx_host, user, password, "version")
            esx_license = self._managed_host_info(server, connection.esx_host, user, password, "licenseProductName")

        connection.esx_host_version = esx_version
        connection.esx_host_license_product_name = esx_license
        connection.vcenter_host_version = vc_version
        connection.vcenter_host_license_product_name = vc_license
        self.logger.debug(
            "Connection %s: esx=%s (%s) vcenter=%s (%s)",
            connection.name, esx_version, esx_license, vc_version, vc_license,
        )

    def get_api_type(self, server: str, username: str, password: Any) -> str:
        """'HostAgent' for a bare ESX host, 'VirtualCenter' for vCenter."""
        return self._primary_host_info(server, username, Secret.coerce(password) or Secret(""), "apiType")

    def api_for_connection(self, name: str) -> Any:
        connection = self.get(name)
        if connection is None:
            return None
        self.update_connection_info(connection)
        return self.cache.api

    # ------------------------------------------------------------------
    # topology
    # ------------------------------------------------------------------

    def get_datastores(self, connection: EsxConnection) -> List[Any]:
        api = self.verify_credentials(connection.primary_host, connection.user, connection.password)
        if connection.is_standalone:
            hosts = api.find_all(topology.HOST, ["datastore"])
            host = hosts[0] if hosts else None
        else:
            host = api.find_by_name(topology.HOST, U.basename(connection.esx_host), ["datastore"])
        if host is None:
            return []
        return list(getattr(host, "datastore", None) or [])

    def get_vcenter_hosts(self, server: str, username: str, password: Any) -> List[str]:
        """Connected ESX hosts managed by vCenter outside any cluster, as folder paths."""
        self.logger.debug("Listing all vCenter hosts.")
        api = self.verify_credentials(server, username, password)
        names: List[str] = []
        for host in api.find_all(topology.HOST, []):
            state = getattr(getattr(host, "runtime", None), "connectionState", None)
            if str(state) != "connected":
                continue
            if topology.ref_type(getattr(host, "parent", None)) == topology.CLUSTER:
                continue
            names.append(str(host.name))
        return topology.resolve_object_names(
            names, api.find_all(topology.DATACENTER, []), max_depth=self.max_folder_depth
        )

    def get_host_options(
        self, server: str, username: str, password: Any, host_id: str, host_type: str
    ) -> Dict[str, List[str]]:
        """iSCSI adapters and datastores a host offers, for the offload settings."""
        self.logger.debug("Getting host options. Host ID is %s, host type is %s", host_id, host_type)
        api = self.verify_credentials(server, username, password)
        if host_type == EsxHostType.CLUSTER:
            host = api.find_one(topology.HOST, host_id, ["datastore"])
        elif host_type == EsxHostType.VCENTER:
            host = api.find_by_name(topology.HOST, U.basename(host_id), ["datastore"])
        elif host_type == EsxHostType.STANDALONE:
            hosts = api.find_all(topology.HOST, ["datastore"])
            host = hosts[0] if hosts else None
        else:
            self.logger.error("Unknown host type: %s", host_type)
            raise InvalidConnectionParameters(code=2, msg=f"Unknown host type: {host_type}")
        if host is None:
            raise TopologyObjectNotFound(code=5, msg="Could not find host", context={"hostId": host_id})

        options: Dict[str, List[str]] = {"hba": [], "datastores": []}
        storage = getattr(getattr(host, "config", None), "storageDevice", None)
        for hba in getattr(storage, "hostBusAdapter", None) or []:
            if topology.ref_type(hba) == ISCSI_HBA_TYPE:
                options["hba"].append(hba.device)
        for ds in getattr(host, "datastore", None) or []:
            options["datastores"].append(ds.name)
        return options

    def get_hypervisor_options(self, option: int, params: Mapping[str, Any]) -> Any:
        server = params.get("server") or ""
        username = params.get("username") or ""
        password = params.get("password") or ""
        self.verify_credentials(server, username, password)
        if option == LIST_HOSTS:
            return self.get_vcenter_hosts(server, username, password)
        if option == LIST_HOST_OPTIONS:
            return self.get_host_options(
                server, username, password, params.get("hostId") or "", params.get("hostType") or ""
            )
        return []

    def get_folders_of_host(self, host: str, root_folder: Any) -> str:
        return topology.find_folders_of_host(host, root_folder, max_depth=self.max_folder_depth)

    def get_datacenters(self, server: str, username: str, password: Any) -> List[ManagedObjectRef]:
        self.logger.debug("Getting the list of datacenters for %s", server)
        api = self.verify_credentials(server, username, password)
        return [
            ManagedObjectRef(topology.resolve_datacenter_path(dc, max_depth=self.max_folder_depth), topology.ref_id(dc))
            for dc in api.find_all(topology.DATACENTER, ["name", "parent"])
        ]

    def get_datacenter_clusters(self, server: str, username: str, password: Any, datacenter_id: str) -> List[ManagedObjectRef]:
        self.logger.debug("Getting the list of clusters on %s for datacenter %s", server, datacenter_id)
        api = self.verify_credentials(server, username, password)
        dc = api.find_one(topology.DATACENTER, datacenter_id, ["name", "hostFolder"])
        if dc is None:
            raise TopologyObjectNotFound(
                code=5, msg=f"Could not find datacenter {datacenter_id}", context={"datacenterId": datacenter_id}
            )
        return topology.traverse_folder(dc.hostFolder, topology.CLUSTER, max_depth=self.max_folder_depth)

    def get_cluster_hosts(self, server: str, username: str, password: Any, cluster_id: str) -> List[ManagedObjectRef]:
        """Connected ESX hosts of a cluster."""
        self.logger.debug("Getting the list of hosts on %s for cluster %s", server, cluster_id)
        api = self.verify_credentials(server, username, password)
        cluster = api.find_one(topology.CLUSTER, cluster_id, ["host"])
        if cluster is None:
            raise TopologyObjectNotFound(
                code=5, msg=f"Could not find cluster {cluster_id}", context={"clusterId": cluster_id}
            )
        out: List[ManagedObjectRef] = []
        for host in getattr(cluster, "host", None) or []:
            if str(getattr(getattr(host, "runtime", None), "connectionState", None)) == "connected":
                out.append(ManagedObjectRef(str(host.name), topology.ref_id(host)))
        return out
