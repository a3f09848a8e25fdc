"""Type descriptors and discovery documents for the supported resource kinds."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any

DNS1123_SUBDOMAIN_MAX_LENGTH = 253
_SUFFIX_LENGTH = 5
_NAME_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"

SUPPORTED_VERBS = ["create", "delete", "get", "list", "patch", "watch"]

# Kinds whose objects carry a status section.
_KINDS_WITH_STATUS = frozenset(
    {
        "Namespace",
        "Node",
        "Pod",
        "Service",
        "PersistentVolume",
        "PersistentVolumeClaim",
        "ReplicationController",
        "Deployment",
        "ReplicaSet",
        "StatefulSet",
        "PodDisruptionBudget",
        "VolumeAttachment",
    }
)


def generate_name(base: str) -> str:
    """Append a random five character suffix to ``base``, keeping a valid DNS subdomain length."""
    suffix = "".join(random.choice(_NAME_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    limit = DNS1123_SUBDOMAIN_MAX_LENGTH
    if len(base) + len(suffix) > limit:
        base = base[: limit - len(suffix)]
    return base + suffix


def _group_version(group: str, version: str) -> str:
    return f"{group}/{version}" if group else version


@dataclass
class Descriptor:
    """Type information about one resource kind."""

    kind: str
    list_kind: str
    group: str
    version: str
    resource_name: str
    namespaced: bool
    api_resource: dict[str, Any] = field(default_factory=dict)
    has_status: bool = False

    def group_version(self) -> str:
        """Return the ``apiVersion`` string of this kind."""
        return _group_version(self.group, self.version)

    def resource(self) -> str:
        """Return the plural resource name."""
        return self.resource_name

    def create_object(self) -> dict[str, Any]:
        """Return a new, empty object of this kind."""
        obj: dict[str, Any] = {
            "kind": self.kind,
            "apiVersion": self.group_version(),
            "metadata": {},
        }
        if self.has_status:
            obj["status"] = {}
        return obj


def new_descriptor(
    kind: str,
    list_kind: str,
    namespaced: bool,
    group: str,
    version: str,
    resource: str,
    *args: str,
) -> Descriptor:
    """Build a descriptor; extra positional arguments are short names."""
    if resource.endswith("sses"):
        singular = resource[: -len("es")]
    elif resource.endswith("ties"):
        singular = resource[: -len("ties")] + "ty"
    elif resource.endswith("s"):
        singular = resource[:-1]
    else:
        singular = resource

    api_resource: dict[str, Any] = {
        "name": resource,
        "singularName": singular,
        "namespaced": namespaced,
    }
    if group:
        api_resource["group"] = group
    if version:
        api_resource["version"] = version
    api_resource["kind"] = kind
    api_resource["verbs"] = list(SUPPORTED_VERBS)
    if args:
        api_resource["shortNames"] = list(args)
    api_resource["categories"] = ["all"]
    api_resource["storageVersionHash"] = generate_name(singular)

    return Descriptor(
        kind=kind,
        list_kind=list_kind,
        group=group,
        version=version,
        resource_name=resource,
        namespaced=namespaced,
        api_resource=api_resource,
        has_status=kind in _KINDS_WITH_STATUS,
    )


def build_api_group_list(descriptors: list[Descriptor]) -> dict[str, Any]:
    """Build the ``APIGroupList`` document for the non-core groups of ``descriptors``."""
    groups: dict[str, dict[str, Any]] = {}
    for d in descriptors:
        # The core group must not be listed, or clients see each core kind twice.
        if not d.group:
            continue
        discovery = {"groupVersion": d.group_version(), "version": d.version}
        groups[d.group] = {
            "name": d.group,
            "versions": [dict(discovery)],
            "preferredVersion": dict(discovery),
        }
    return {"kind": "APIGroupList", "apiVersion": "v1", "groups": list(groups.values())}


_APPS = "apps"
_COORDINATION = "coordination.k8s.io"
_EVENTS = "events.k8s.io"
_RBAC = "rbac.authorization.k8s.io"
_SCHEDULING = "scheduling.k8s.io"
_POLICY = "policy"
_STORAGE = "storage.k8s.io"

NAMESPACES = new_descriptor("Namespace", "NamespaceList", False, "", "v1", "namespaces", "ns")
SERVICE_ACCOUNTS = new_descriptor(
    "ServiceAccount", "ServiceAccountList", True, "", "v1", "serviceaccounts", "sa"
)
CONFIG_MAPS = new_descriptor("ConfigMap", "ConfigMapList", True, "", "v1", "configmaps", "cm")
NODES = new_descriptor("Node", "NodeList", False, "", "v1", "nodes", "no")
PODS = new_descriptor("Pod", "PodList", True, "", "v1", "pods", "po")
SERVICES = new_descriptor("Service", "ServiceList", True, "", "v1", "services", "svc")
PERSISTENT_VOLUMES = new_descriptor(
    "PersistentVolume", "PersistentVolumeList", False, "", "v1", "persistentvolumes", "pv"
)
PERSISTENT_VOLUME_CLAIMS = new_descriptor(
    "PersistentVolumeClaim",
    "PersistentVolumeClaimList",
    True,
    "",
    "v1",
    "persistentvolumeclaims",
    "pvc",
)
REPLICATION_CONTROLLERS = new_descriptor(
    "ReplicationController",
    "ReplicationControllerList",
    True,
    "",
    "v1",
    "replicationcontrollers",
    "rc",
)
PRIORITY_CLASSES = new_descriptor(
    "PriorityClass", "PriorityClassList", False, _SCHEDULING, "v1", "priorityclasses", "pc"
)
LEASES = new_descriptor("Lease", "LeaseList", True, _COORDINATION, "v1", "leases")
EVENTS = new_descriptor("Event", "EventList", True, _EVENTS, "v1", "events", "ev")
ROLES = new_descriptor("Role", "RoleList", True, _RBAC, "v1", "roles")
DEPLOYMENTS = new_descriptor(
    "Deployment", "DeploymentList", True, _APPS, "v1", "deployments", "deploy"
)
REPLICA_SETS = new_descriptor("ReplicaSet", "ReplicaSetList", True, _APPS, "v1", "replicasets", "rs")
STATEFUL_SETS = new_descriptor(
    "StatefulSet", "StatefulSetList", True, _APPS, "v1", "statefulsets", "sts"
)
POD_DISRUPTION_BUDGETS = new_descriptor(
    "PodDisruptionBudget",
    "PodDisruptionBudgetList",
    True,
    _POLICY,
    "v1",
    "poddisruptionbudgets",
    "pdb",
)
STORAGE_CLASSES = new_descriptor(
    "StorageClass", "StorageClassList", False, _STORAGE, "v1", "storageclasses", "sc"
)
CSI_DRIVERS = new_descriptor("CSIDriver", "CSIDriverList", False, _STORAGE, "v1", "csidrivers")
CSI_STORAGE_CAPACITIES = new_descriptor(
    "CSIStorageCapacity", "CSIStorageCapacityList", True, _STORAGE, "v1", "csistoragecapacities"
)
CSI_NODES = new_descriptor("CSINode", "CSINodeList", False, _STORAGE, "v1", "csinodes")
VOLUME_ATTACHMENTS = new_descriptor(
    "VolumeAttachment", "VolumeAttachmentList", False, _STORAGE, "v1", "volumeattachments"
)

SUPPORTED_DESCRIPTORS = [
    SERVICE_ACCOUNTS,
    CONFIG_MAPS,
    NAMESPACES,
    NODES,
    PODS,
    SERVICES,
    PERSISTENT_VOLUMES,
    PERSISTENT_VOLUME_CLAIMS,
    REPLICATION_CONTROLLERS,
    PRIORITY_CLASSES,
    LEASES,
    EVENTS,
    ROLES,
    DEPLOYMENTS,
    REPLICA_SETS,
    STATEFUL_SETS,
    POD_DISRUPTION_BUDGETS,
    STORAGE_CLASSES,
    CSI_DRIVERS,
    CSI_STORAGE_CAPACITIES,
    CSI_NODES,
    VOLUME_ATTACHMENTS,
]

SUPPORTED_API_VERSIONS: dict[str, Any] = {
    "kind": "APIVersions",
    "versions": ["v1"],
    "serverAddressByClientCIDRs": [
        {"clientCIDR": "0.0.0.0/0", "serverAddress": "127.0.0.1:8080"},
    ],
}

SUPPORTED_API_GROUPS = build_api_group_list(SUPPORTED_DESCRIPTORS)

SUPPORTED_CORE_API_RESOURCE_LIST: dict[str, Any] = {
    "kind": "APIResourceList",
    "groupVersion": "v1",
    "resources": [
        d.api_resource
        for d in (
            SERVICE_ACCOUNTS,
            CONFIG_MAPS,
            NAMESPACES,
            NODES,
            PODS,
            SERVICES,
            PERSISTENT_VOLUMES,
            PERSISTENT_VOLUME_CLAIMS,
            REPLICATION_CONTROLLERS,
        )
    ],
}


def _group_resource_list(group: str, *descriptors: Descriptor) -> dict[str, Any]:
    return {
        "kind": "APIResourceList",
        "apiVersion": "v1",
        "groupVersion": _group_version(group, "v1"),
        "resources": [d.api_resource for d in descriptors],
    }


SUPPORTED_GROUP_API_RESOURCE_LISTS: list[dict[str, Any]] = [
    _group_resource_list(_APPS, DEPLOYMENTS, REPLICA_SETS, STATEFUL_SETS),
    _group_resource_list(_COORDINATION, LEASES),
    _group_resource_list(_EVENTS, EVENTS),
    _group_resource_list(_RBAC, ROLES),
    _group_resource_list(_SCHEDULING, PRIORITY_CLASSES),
    _group_resource_list(_POLICY, POD_DISRUPTION_BUDGETS),
    _group_resource_list(
        _STORAGE,
        STORAGE_CLASSES,
        CSI_DRIVERS,
        CSI_STORAGE_CAPACITIES,
        CSI_NODES,
        VOLUME_ATTACHMENTS,
    ),
]