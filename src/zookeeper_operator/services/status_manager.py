""" Readiness and membership status of a ZookeeperCluster.
"""

import logging

from zookeeper_operator.services.client import POD, persist_cluster_status
from zookeeper_operator.services.zk_client import create_meta_root

logger = logging.getLogger(__name__)


def is_pod_ready(pod):
    """ A pod is ready when every reported container is ready.
    """
    statuses = (pod.get("status") or {}).get("containerStatuses") or []
    return all(c.get("ready") for c in statuses)


def partition_members(pods):
    ready, unready = [], []
    for pod in pods:
        name = pod["metadata"]["name"]
        if is_pod_ready(pod):
            ready.append(name)
        else:
            unready.append(name)
    return ready, unready


class StatusManager:
    """ Aggregates pod observations into the cluster status.

    Args:
        store: Object store adapter
        zk_client_factory: Callable returning a fresh ZookeeperClient
    """

    def __init__(self, store, zk_client_factory):
        self.store = store
        self.zk_client_factory = zk_client_factory

    def reconcile(self, cluster):
        status = cluster.status
        if status.is_upgrading() or status.is_upgrade_failed():
            return cluster

        status.init_conditions()
        pods = self.store.list(POD, cluster.namespace, {"app": cluster.name})
        ready, unready = partition_members(pods)
        status.members.ready = ready
        status.members.unready = unready

        fully_ready = status.readyReplicas == cluster.spec.replicas
        if fully_ready and not status.metaRootCreated:
            logger.info(f"Cluster {cluster.namespace}/{cluster.name} is ready, creating metadata znode")
            create_meta_root(self.zk_client_factory(), cluster)
            logger.info("Metadata znode created")
            status.metaRootCreated = True

        status.set_pods_ready(fully_ready)
        if not status.currentVersion and status.is_ready():
            status.currentVersion = cluster.spec.image.tag

        logger.info(f"Updating zookeeper status of {cluster.namespace}/{cluster.name}")
        persist_cluster_status(self.store, cluster)
        return cluster
