""" Statefulset reconciliation, including staleness checks and upgrades.
"""

import copy
import logging

from zookeeper_operator.errors import StalenessError
from zookeeper_operator.services import resources
from zookeeper_operator.services.child_sync import (
    merge_statefulset,
    set_owner_reference,
    sync_service_account,
)
from zookeeper_operator.services.client import STATEFUL_SET
from zookeeper_operator.services.resources import OWNER_RV_LABEL
from zookeeper_operator.services.upgrade_manager import UpgradeState
from zookeeper_operator.services.zk_client import update_cluster_size

logger = logging.getLogger(__name__)


def _to_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def compare_resource_version(cluster, sts):
    """ Compare the cluster's resourceVersion with the one labelled on its statefulset.

    Returns:
        int: -1 if the cluster is older, 0 if equal or undecidable, 1 if newer
    """
    cluster_rv = _to_int(cluster.metadata.resourceVersion)
    labels = (sts.get("metadata") or {}).get("labels") or {}
    sts_rv = _to_int(labels.get(OWNER_RV_LABEL))

    if cluster_rv is None:
        logger.info(
            "Fail to parse ZookeeperCluster version. Cannot decide zookeeper StatefulSet version"
        )
        return 0
    if sts_rv is None:
        if OWNER_RV_LABEL in labels:
            logger.info(
                f"Fail to convert StatefulSet version {labels[OWNER_RV_LABEL]} to integer; "
                "setting it to ZookeeperCluster version"
            )
        return 1
    if cluster_rv < sts_rv:
        return -1
    if cluster_rv > sts_rv:
        return 1
    return 0


class StatefulSetManager:
    """ Creates, updates and upgrades the ensemble statefulset.

    Args:
        store: Object store adapter
        upgrades: UpgradeStateMachine
        zk_client_factory: Callable returning a fresh ZookeeperClient
    """

    def __init__(self, store, upgrades, zk_client_factory):
        self.store = store
        self.upgrades = upgrades
        self.zk_client_factory = zk_client_factory

    def reconcile(self, cluster):
        if cluster.status.is_upgrade_failed():
            if self._recover_failed_upgrade(cluster) == UpgradeState.FAILED:
                return cluster

        sync_service_account(self.store, cluster)

        desired = set_owner_reference(cluster, resources.make_statefulset(cluster))
        namespace = cluster.namespace
        name = desired["metadata"]["name"]
        found = self.store.get(STATEFUL_SET, namespace, name)
        if found is None:
            logger.info(f"Creating a new Zookeeper StatefulSet {namespace}/{name}")
            desired["metadata"].setdefault("labels", {})[OWNER_RV_LABEL] = str(
                cluster.metadata.resourceVersion
            )
            self.store.create(STATEFUL_SET, desired)
            return cluster

        found = self._sync_existing(cluster, desired, found)
        sts_status = found.get("status") or {}
        cluster.status.replicas = sts_status.get("replicas") or 0
        cluster.status.readyReplicas = sts_status.get("readyReplicas") or 0

        state = self.upgrades.step(cluster, found)
        logger.debug(f"Upgrade state of {namespace}/{cluster.name}: {state.value}")
        return cluster

    def _sync_existing(self, cluster, desired, found):
        """ Bring an existing statefulset in line with ``desired``.

        Refuses to write when the cluster is older than the revision that
        last wrote the statefulset, and notifies the ensemble before a resize.
        """
        cmp = compare_resource_version(cluster, found)
        if cmp < 0:
            raise StalenessError(
                f"Staleness: cr.ResourceVersion {cluster.metadata.resourceVersion} is smaller "
                f"than labeledRV {found['metadata']['labels'][OWNER_RV_LABEL]}"
            )

        merged = copy.deepcopy(found)
        if cmp > 0:
            merged["metadata"].setdefault("labels", {})[OWNER_RV_LABEL] = str(
                cluster.metadata.resourceVersion
            )

        found_size = (found.get("spec") or {}).get("replicas")
        new_size = desired["spec"]["replicas"]
        if found_size != new_size:
            update_cluster_size(self.zk_client_factory(), cluster, new_size)

        merge_statefulset(merged, desired)
        if merged == found:
            logger.debug(f"StatefulSet {found['metadata']['name']} is up to date")
            return found
        logger.info(
            f"Updating StatefulSet {found['metadata']['namespace']}/{found['metadata']['name']}"
        )
        return self.store.update(STATEFUL_SET, merged)

    def _recover_failed_upgrade(self, cluster):
        """ Reapply the desired statefulset and try to leave the failed state.

        Returns:
            UpgradeState: NOT_UPGRADING once recovered, FAILED otherwise
        """
        desired = set_owner_reference(cluster, resources.make_statefulset(cluster))
        found = self.store.get(STATEFUL_SET, cluster.namespace, desired["metadata"]["name"])
        if found is None:
            return UpgradeState.FAILED
        found = self._sync_existing(cluster, desired, found)
        return self.upgrades.recover(cluster, found)
