""" Client for the metadata znodes the operator keeps inside each ensemble.
"""

import logging

from kazoo.client import KazooClient
from kazoo.exceptions import KazooException, NodeExistsError
from kazoo.handlers.threading import KazooTimeoutError

from zookeeper_operator.errors import ExternalCallResult, ExternalStoreError, Severity

logger = logging.getLogger(__name__)


def cluster_size_payload(replicas):
    return f"CLUSTER_SIZE={replicas}"


class ZookeeperClient:
    """ Short-lived ZooKeeper session, opened and closed within one stage.

    Args:
        timeout: Seconds to wait for the session to be established
    """

    def __init__(self, timeout=10.0):
        self.timeout = timeout
        self.conn = None

    def connect(self, uri):
        """ Open a session against the ensemble behind ``uri``.
        """
        conn = KazooClient(hosts=uri, timeout=self.timeout)
        try:
            conn.start(timeout=self.timeout)
        except KazooTimeoutError as e:
            conn.close()
            raise ExternalStoreError(f"Timed out connecting to zookeeper at {uri}") from e
        self.conn = conn
        logger.info(f"Connected to zookeeper at {uri}")

    def node_exists(self, path):
        """ Return the version of the znode at ``path``.
        """
        try:
            stat = self.conn.exists(path)
        except KazooException as e:
            raise ExternalStoreError(f"Error doing exists check for znode {path}: {e}") from e
        if stat is None:
            raise ExternalStoreError(f"Znode {path} does not exist")
        return stat.version

    def create_node(self, cluster, path):
        """ Create ``path`` and its parents, storing the cluster size in the leaf.

        An already existing leaf counts as created, so a retried cycle that
        failed after this call succeeds the second time.
        """
        parent = path.rsplit("/", 1)[0]
        data = cluster_size_payload(cluster.spec.replicas).encode()
        try:
            if parent:
                self.conn.ensure_path(parent)
            self.conn.create(path, data)
            logger.info(f"Created znode {path}")
        except NodeExistsError:
            logger.info(f"Znode {path} already exists")
        except KazooException as e:
            raise ExternalStoreError(f"Error creating znode {path}: {e}") from e

    def update_node(self, path, data, version):
        try:
            self.conn.set(path, data.encode(), version=version)
        except KazooException as e:
            raise ExternalStoreError(f"Error updating znode {path}: {e}") from e

    def close(self):
        if self.conn is None:
            return
        try:
            self.conn.stop()
            self.conn.close()
        finally:
            self.conn = None


def call_external(severity, fn, *args):
    """ Run a ZooKeeper call and tag its outcome with ``severity``.

    Returns:
        tuple: (return value or None, ExternalCallResult)
    """
    try:
        return fn(*args), ExternalCallResult(severity)
    except ExternalStoreError as e:
        return None, ExternalCallResult(severity, e)


def update_cluster_size(client, cluster, replicas):
    """ Record the new ensemble size in the cluster's metadata znode.

    Connecting and locating the znode must succeed; the write itself is
    best-effort.
    """
    uri = cluster.zk_service_uri()
    _, result = call_external(Severity.ABORT, client.connect, uri)
    result.raise_if_fatal("Error storing cluster size")
    try:
        path = cluster.meta_path()
        version, result = call_external(Severity.ABORT, client.node_exists, path)
        result.raise_if_fatal(f"Error doing exists check for znode {path}")

        data = cluster_size_payload(replicas)
        logger.info(f"Updating cluster size in {path} to {data} (version {version})")
        _, result = call_external(Severity.IGNORABLE, client.update_node, path, data, version)
        result.raise_if_fatal(f"Error updating cluster size in znode {path}")
    finally:
        client.close()


def create_meta_root(client, cluster):
    uri = cluster.zk_service_uri()
    _, result = call_external(Severity.ABORT, client.connect, uri)
    result.raise_if_fatal("Error creating cluster metaroot. Connect to zookeeper failed")
    try:
        path = cluster.meta_path()
        logger.info(f"Connected to zookeeper at {uri}, creating {path}")
        _, result = call_external(Severity.ABORT, client.create_node, cluster, path)
        result.raise_if_fatal(f"Error creating cluster metadata path {path}")
    finally:
        client.close()
