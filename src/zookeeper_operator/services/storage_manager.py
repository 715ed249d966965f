""" Storage manager for the PVCs backing ensemble members.

PVCs are created by the statefulset's volume claim templates and are not
garbage collected with the cluster, so the operator deletes them itself:
orphans after a scale-down, and all of them when a cluster with the
``Delete`` reclaim policy is removed.
"""

import logging

from zookeeper_operator.errors import TransientError, ZookeeperOperatorError
from zookeeper_operator.models.zookeeper import RECLAIM_DELETE
from zookeeper_operator.services.client import PVC, persist_cluster

logger = logging.getLogger(__name__)

PVC_FINALIZER = "cleanUpZookeeperPVC"


def get_pvc_ordinal(pvc_name):
    """ Ordinal of the member a PVC belongs to, e.g. 2 for ``data-zk-2``.

    Args:
        pvc_name: Name of the PVC
    """
    _, sep, suffix = pvc_name.rpartition("-")
    if not sep:
        return None
    try:
        return int(suffix)
    except ValueError:
        return None


def is_pvc_orphan(pvc_name, replicas):
    """ True when the PVC belongs to a member beyond the desired replica count.
    """
    ordinal = get_pvc_ordinal(pvc_name)
    return ordinal is not None and ordinal >= replicas


def pvc_labels(cluster):
    return {"app": cluster.name, "uid": cluster.metadata.uid}


class StorageLifecycleManager:
    """ Finalizer handling and PVC cleanup for ZookeeperClusters.

    Args:
        store: Object store adapter
        disable_finalizer: Never attach the cleanup finalizer
    """

    def __init__(self, store, disable_finalizer=False):
        self.store = store
        self.disable_finalizer = disable_finalizer

    def reconcile_finalizers(self, cluster):
        if cluster.spec.reclaim_policy != RECLAIM_DELETE:
            return cluster

        finalizers = cluster.metadata.finalizers
        if not cluster.is_being_deleted():
            if PVC_FINALIZER not in finalizers and not self.disable_finalizer:
                logger.info(f"Adding finalizer {PVC_FINALIZER} to {cluster.namespace}/{cluster.name}")
                cluster.metadata.finalizers = finalizers + [PVC_FINALIZER]
                persist_cluster(self.store, cluster)
            return self.cleanup_orphan_pvcs(cluster)

        if PVC_FINALIZER in finalizers:
            self.cleanup_all_pvcs(cluster)
            logger.info(f"Removing finalizer {PVC_FINALIZER} from {cluster.namespace}/{cluster.name}")
            cluster.metadata.finalizers = [f for f in finalizers if f != PVC_FINALIZER]
            persist_cluster(self.store, cluster)
        return cluster

    def list_pvcs(self, cluster):
        return self.store.list(PVC, cluster.namespace, pvc_labels(cluster))

    def cleanup_orphan_pvcs(self, cluster):
        """ Delete PVCs of members removed by a scale-down.

        Only runs once the ensemble is fully ready at its desired size, so
        claims of members that are still shutting down are left alone.
        """
        replicas = cluster.spec.replicas
        if cluster.status.readyReplicas != replicas:
            return cluster

        pvcs = self.list_pvcs(cluster)
        logger.info(
            f"cleanupOrphanPVCs: {len(pvcs)} PVCs, {cluster.status.readyReplicas} ready replicas"
        )
        if len(pvcs) <= replicas:
            return cluster
        for pvc in pvcs:
            if is_pvc_orphan(pvc["metadata"]["name"], replicas):
                self.delete_pvc(pvc)
        return cluster

    def cleanup_all_pvcs(self, cluster):
        """ Delete every PVC of a cluster being removed.

        Every claim is attempted; if any deletion failed the error is raised
        afterwards so the finalizer stays until all claims are gone.
        """
        failed = [
            pvc["metadata"]["name"] for pvc in self.list_pvcs(cluster) if not self.delete_pvc(pvc)
        ]
        if failed:
            raise TransientError(
                f"Failed to delete PVCs {failed} of {cluster.namespace}/{cluster.name}"
            )

    def delete_pvc(self, pvc):
        """ Delete one PVC; failures are logged so the remaining PVCs still get deleted.

        Returns:
            bool: True when the PVC is gone
        """
        name = pvc["metadata"]["name"]
        namespace = pvc["metadata"]["namespace"]
        logger.info(f"Deleting PVC {namespace}/{name}")
        try:
            self.store.delete(PVC, namespace, name)
        except ZookeeperOperatorError as e:
            logger.error(f"Error deleting PVC {namespace}/{name}: {e}")
            return False
        return True
