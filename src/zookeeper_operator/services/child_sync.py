""" Get-or-create-or-merge synchronization of the children of a cluster.

Each ``sync_*`` function renders the desired object, creates it when it is
missing and otherwise copies the mutable fields onto the stored object.
Platform-assigned fields (clusterIP, uid, resourceVersion, status) always
come from the stored object. Writes are skipped when the merge changes
nothing, so running a stage twice against an unchanged cluster is a no-op.
"""

import copy
import logging

from zookeeper_operator.services import resources
from zookeeper_operator.services.client import (
    CONFIG_MAP,
    PDB,
    SERVICE,
    SERVICE_ACCOUNT,
)

logger = logging.getLogger(__name__)


def set_owner_reference(cluster, obj):
    """ Make the cluster the controller owner of ``obj``.
    """
    metadata = obj.setdefault("metadata", {})
    owner_ref = cluster.owner_reference()
    refs = [r for r in metadata.get("ownerReferences") or [] if r.get("uid") != owner_ref["uid"]]
    refs.append(owner_ref)
    metadata["ownerReferences"] = refs
    return obj


def merge_metadata(found, desired):
    """Layer desired labels and annotations over the stored ones."""
    found_meta = found.setdefault("metadata", {})
    desired_meta = desired.get("metadata", {})
    for key in ("labels", "annotations"):
        if desired_meta.get(key):
            found_meta[key] = {**(found_meta.get(key) or {}), **desired_meta[key]}


def merge_config_map(found, desired):
    merge_metadata(found, desired)
    found["data"] = desired.get("data")
    if desired.get("binaryData") is not None or found.get("binaryData") is not None:
        found["binaryData"] = desired.get("binaryData")


def merge_service(found, desired):
    merge_metadata(found, desired)
    spec = found.setdefault("spec", {})
    spec["ports"] = desired["spec"]["ports"]
    spec["type"] = desired["spec"]["type"]
    spec["selector"] = desired["spec"]["selector"]


def merge_pod_disruption_budget(found, desired):
    merge_metadata(found, desired)
    spec = found.setdefault("spec", {})
    for key in ("maxUnavailable", "minAvailable"):
        if key in desired["spec"]:
            spec[key] = desired["spec"][key]
        else:
            spec.pop(key, None)
    spec["selector"] = desired["spec"]["selector"]


def merge_service_account(found, desired):
    merge_metadata(found, desired)
    found["imagePullSecrets"] = desired.get("imagePullSecrets")


def merge_statefulset(found, desired):
    """ Copy replicas, pod template and update strategy onto the stored set.

    Labels are layered so the ``owner-rv`` label on the stored set survives.
    """
    merge_metadata(found, desired)
    spec = found.setdefault("spec", {})
    spec["replicas"] = desired["spec"]["replicas"]
    spec["template"] = desired["spec"]["template"]
    spec["updateStrategy"] = desired["spec"]["updateStrategy"]


def sync_child(store, cluster, kind, desired, merge, on_create=None):
    """ Create ``desired`` if absent, otherwise merge it onto the stored object.

    Args:
        store: Object store adapter
        cluster: Owning ZookeeperCluster
        kind: Kind of the child object
        desired: Desired child object
        merge: Function copying mutable fields from desired onto found
        on_create: Optional hook applied to ``desired`` before the first create

    Returns:
        tuple: (status, object) where status is created, updated or unchanged
    """
    set_owner_reference(cluster, desired)
    name = desired["metadata"]["name"]
    namespace = desired["metadata"]["namespace"]

    found = store.get(kind, namespace, name)
    if found is None:
        if on_create is not None:
            on_create(desired)
        logger.info(f"Creating {kind} {namespace}/{name}")
        return "created", store.create(kind, desired)

    merged = copy.deepcopy(found)
    merge(merged, desired)
    if merged == found:
        logger.debug(f"{kind} {namespace}/{name} is up to date")
        return "unchanged", found

    logger.info(f"Updating {kind} {namespace}/{name}")
    return "updated", store.update(kind, merged)


def sync_config_map(store, cluster):
    sync_child(
        store, cluster, CONFIG_MAP, resources.make_config_map(cluster), merge_config_map
    )
    return cluster


def sync_client_service(store, cluster):
    """ Sync the client service and record the client endpoints in status.
    """
    result, svc = sync_child(
        store, cluster, SERVICE, resources.make_client_service(cluster), merge_service
    )
    if result == "created":
        return cluster

    port = cluster.spec.port("client")
    spec = svc.get("spec") or {}
    cluster.status.internalClientEndpoint = f"{spec.get('clusterIP', '')}:{port}"
    if spec.get("type") == "LoadBalancer":
        ingress = ((svc.get("status") or {}).get("loadBalancer") or {}).get("ingress") or []
        for item in ingress:
            if item.get("ip"):
                cluster.status.externalClientEndpoint = f"{item['ip']}:{port}"
    else:
        cluster.status.externalClientEndpoint = "N/A"
    return cluster


def sync_headless_service(store, cluster):
    sync_child(
        store, cluster, SERVICE, resources.make_headless_service(cluster), merge_service
    )
    return cluster


def sync_admin_server_service(store, cluster):
    sync_child(
        store, cluster, SERVICE, resources.make_admin_server_service(cluster), merge_service
    )
    return cluster


def sync_pod_disruption_budget(store, cluster):
    sync_child(
        store,
        cluster,
        PDB,
        resources.make_pod_disruption_budget(cluster),
        merge_pod_disruption_budget,
    )
    return cluster


def sync_service_account(store, cluster):
    """ Sync the member service account unless the namespace default is used.
    """
    if cluster.spec.pod.serviceAccountName == "default":
        return cluster
    sync_child(
        store,
        cluster,
        SERVICE_ACCOUNT,
        resources.make_service_account(cluster),
        merge_service_account,
    )
    return cluster
