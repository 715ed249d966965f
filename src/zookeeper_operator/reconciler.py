""" Reconciliation dispatcher for ZookeeperCluster objects.

One call to ``reconcile`` is one cycle: fetch the cluster, default it, and
either persist the defaults and ask to be called again at once, or run the
ordered stages below and leave the next cycle to the reconcile timer. Each
stage takes the cluster and returns it; the first failing stage aborts the
cycle.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from zookeeper_operator.config import OperatorConfig
from zookeeper_operator.models.zookeeper import ZookeeperCluster
from zookeeper_operator.services import child_sync
from zookeeper_operator.services.client import persist_cluster
from zookeeper_operator.services.statefulset_manager import StatefulSetManager
from zookeeper_operator.services.status_manager import StatusManager
from zookeeper_operator.services.storage_manager import StorageLifecycleManager
from zookeeper_operator.services.upgrade_manager import UpgradeStateMachine
from zookeeper_operator.services.zk_client import ZookeeperClient

logger = logging.getLogger(__name__)

RESTART_ANNOTATION = "restartTime"


@dataclass
class ReconcileResult:
    requeue: bool = False
    exists: bool = True


def rolling_restart_annotation():
    """Annotation stamped on the pod template to restart every member."""
    value = datetime.now(timezone.utc).strftime("%A, %d-%b-%y %H:%M:%S UTC")
    return RESTART_ANNOTATION, value


class ZookeeperClusterReconciler:
    """ Runs reconcile cycles for ZookeeperClusters.

    Args:
        store: Object store adapter
        config: OperatorConfig
        zk_client_factory: Callable returning a fresh ZookeeperClient
    """

    def __init__(self, store, config=None, zk_client_factory=None, clock=None):
        self.store = store
        self.config = config or OperatorConfig()
        self.zk_client_factory = zk_client_factory or (
            lambda: ZookeeperClient(timeout=self.config.zk_connect_timeout)
        )
        self.storage = StorageLifecycleManager(store, self.config.disable_finalizer)
        self.upgrades = UpgradeStateMachine(store, self.config.upgrade_timeout, clock=clock)
        self.statefulsets = StatefulSetManager(store, self.upgrades, self.zk_client_factory)
        self.status = StatusManager(store, self.zk_client_factory)

    @property
    def stages(self):
        return [
            ("finalizers", self.storage.reconcile_finalizers),
            ("config-map", lambda c: child_sync.sync_config_map(self.store, c)),
            ("statefulset", self.statefulsets.reconcile),
            ("client-service", lambda c: child_sync.sync_client_service(self.store, c)),
            ("headless-service", lambda c: child_sync.sync_headless_service(self.store, c)),
            ("admin-server-service", lambda c: child_sync.sync_admin_server_service(self.store, c)),
            ("pod-disruption-budget", lambda c: child_sync.sync_pod_disruption_budget(self.store, c)),
            ("cluster-status", self.status.reconcile),
        ]

    def reconcile(self, namespace, name):
        """ Run one reconcile cycle for the cluster ``namespace/name``.

        Returns:
            ReconcileResult: whether to run again at once and whether the cluster still exists
        """
        logger.info(f"Reconciling ZookeeperCluster {namespace}/{name}")
        body = self.store.get_cluster(namespace, name)
        if body is None:
            logger.info(f"ZookeeperCluster {namespace}/{name} not found, nothing to do")
            return ReconcileResult(exists=False)
        cluster = ZookeeperCluster.from_body(body)

        if self.apply_defaults(cluster):
            logger.info(f"Setting default settings for zookeeper-cluster {namespace}/{name}")
            persist_cluster(self.store, cluster)
            return ReconcileResult(requeue=True)

        if cluster.is_being_deleted():
            self.storage.reconcile_finalizers(cluster)
            return ReconcileResult()

        self.run_stages(cluster)
        return ReconcileResult()

    def apply_defaults(self, cluster):
        """ Default the spec and consume the restart trigger.

        Returns:
            bool: True when the cluster object has to be written back
        """
        changed = cluster.with_defaults()
        if cluster.spec.triggerRollingRestart:
            logger.info(f"Restarting zookeeper cluster {cluster.namespace}/{cluster.name}")
            key, value = rolling_restart_annotation()
            cluster.spec.pod.annotations = {**cluster.spec.pod.annotations, key: value}
            cluster.spec.triggerRollingRestart = False
            changed = True
        return changed

    def run_stages(self, cluster):
        for stage_name, stage in self.stages:
            logger.debug(f"Running stage {stage_name} for {cluster.namespace}/{cluster.name}")
            try:
                cluster = stage(cluster)
            except Exception as e:
                logger.error(f"Stage {stage_name} failed for {cluster.namespace}/{cluster.name}: {e}")
                raise
        return cluster
