# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/connection/topology.py
"""
Inventory path helpers for vCenter managed objects.

Works on anything shaped like a pyVmomi managed object: `_wsdlName` gives
the reference type, `_moId` the reference id, plus the usual `name`,
`parent`, `childEntity` and `hostFolder` properties. Every walk is bounded
by a depth limit and a visited set, so a malformed inventory (cycles,
absurd nesting) raises TopologyError instead of recursing forever.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from ..core.exceptions import TopologyError, TopologyObjectNotFound

MAX_FOLDER_DEPTH = 64

FOLDER = "Folder"
DATACENTER = "Datacenter"
CLUSTER = "ClusterComputeResource"
HOST = "HostSystem"

# Top of the host folder chain inside a datacenter.
HOST_FOLDER_NAME = "host"
# Root folder of the inventory.
DATACENTERS_FOLDER_NAME = "Datacenters"


@dataclass(frozen=True)
class ManagedObjectRef:
    """Inventory path plus reference id, as shown to users picking a target."""
    name: str
    id: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "id": self.id}


def ref_type(obj: Any) -> Optional[str]:
    if obj is None:
        return None
    t = getattr(obj, "_wsdlName", None)
    if t:
        return str(t)
    return type(obj).__name__.rsplit(".", 1)[-1]


def ref_id(obj: Any) -> Optional[str]:
    v = getattr(obj, "_moId", None)
    return str(v) if v is not None else None


def _visit_key(obj: Any) -> Any:
    return ref_id(obj) or id(obj)


def _children(obj: Any) -> Optional[Iterable[Any]]:
    """childEntity of a folder-like object; None for leaves (hosts, clusters)."""
    try:
        return getattr(obj, "childEntity")
    except AttributeError:
        return None


def traverse_folder(
    folder: Any,
    object_type: str,
    base_path: str = "",
    *,
    max_depth: int = MAX_FOLDER_DEPTH,
) -> List[ManagedObjectRef]:
    """
    Collect every `object_type` below `folder`, depth first, with its path
    relative to `folder` ("prod/cluster-a").
    """
    if ref_type(folder) != FOLDER:
        raise TopologyError(
            code=5,
            msg=f"Invalid reference type passed as Folder. Given type is {ref_type(folder)}",
            context={"type": ref_type(folder)},
        )
    out: List[ManagedObjectRef] = []
    _traverse(folder, object_type, base_path, out, set(), 0, max_depth)
    return out


def _traverse(
    folder: Any,
    object_type: str,
    base_path: str,
    out: List[ManagedObjectRef],
    visited: Set[Any],
    depth: int,
    max_depth: int,
) -> None:
    if depth > max_depth:
        raise TopologyError(code=5, msg=f"Folder nesting exceeds {max_depth} levels", context={"path": base_path})
    key = _visit_key(folder)
    if key in visited:
        return
    visited.add(key)

    for child in _children(folder) or []:
        # An empty folder may report [None]
        if child is None:
            continue
        t = ref_type(child)
        if t == object_type:
            out.append(ManagedObjectRef(base_path + str(child.name), ref_id(child)))
        elif t == FOLDER:
            _traverse(child, object_type, base_path + str(child.name) + "/", out, visited, depth + 1, max_depth)


def find_folders_of_host(host: str, root_folder: Any, *, max_depth: int = MAX_FOLDER_DEPTH) -> str:
    """
    Path of the host (or cluster) called `host` below a datacenter's
    hostFolder, e.g. "rack1/esx01.example.com".

    Raises TopologyObjectNotFound when nothing matches.
    """
    found = _find_leaf(host, root_folder, set(), 0, max_depth)
    if found is None:
        raise TopologyObjectNotFound(code=5, msg="Could not find host", context={"host": host})

    parts: List[str] = []
    node = found
    for _ in range(max_depth + 1):
        if node is None:
            raise TopologyError(code=5, msg=f"Host {host} is not below a '{HOST_FOLDER_NAME}' folder")
        if node.name == HOST_FOLDER_NAME:
            return "/".join(reversed(parts))
        parts.append(str(node.name))
        node = getattr(node, "parent", None)
    raise TopologyError(code=5, msg=f"Folder nesting exceeds {max_depth} levels", context={"host": host})


def _find_leaf(host: str, obj: Any, visited: Set[Any], depth: int, max_depth: int) -> Any:
    if obj is None:
        return None
    if depth > max_depth:
        raise TopologyError(code=5, msg=f"Folder nesting exceeds {max_depth} levels", context={"host": host})
    key = _visit_key(obj)
    if key in visited:
        return None
    visited.add(key)

    children = _children(obj)
    if children is None:
        return obj if getattr(obj, "name", None) == host else None
    for child in children:
        hit = _find_leaf(host, child, visited, depth + 1, max_depth)
        if hit is not None:
            return hit
    return None


def resolve_datacenter_path(datacenter: Any, *, max_depth: int = MAX_FOLDER_DEPTH) -> str:
    """Datacenter path below the root "Datacenters" folder ("emea/dc1")."""
    parts = [str(datacenter.name)]
    parent = getattr(datacenter, "parent", None)
    depth = 0
    while parent is not None and parent.name != DATACENTERS_FOLDER_NAME:
        depth += 1
        if depth > max_depth:
            raise TopologyError(code=5, msg=f"Folder nesting exceeds {max_depth} levels")
        parts.append(str(parent.name))
        parent = getattr(parent, "parent", None)
    return "/".join(reversed(parts))


def resolve_object_names(names: Iterable[str], datacenters: Iterable[Any], *, max_depth: int = MAX_FOLDER_DEPTH) -> List[str]:
    """Expand bare host/cluster names to their folder paths; unknown names pass through."""
    dcs = list(datacenters)
    out: List[str] = []
    for name in names:
        resolved = name
        for dc in dcs:
            try:
                resolved = find_folders_of_host(name, getattr(dc, "hostFolder", None), max_depth=max_depth)
                break
            except TopologyObjectNotFound:
                continue
        out.append(resolved)
    return out
