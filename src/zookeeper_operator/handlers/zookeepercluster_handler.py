"""Kopf handlers delivering ZookeeperCluster identities to the reconciler."""

import logging
import threading
from collections import defaultdict

import kopf

from zookeeper_operator.errors import ZookeeperOperatorError, retry_delay
from zookeeper_operator.models.zookeeper import GROUP, PLURAL, VERSION

logger = logging.getLogger(__name__)

# Immediate requeues allowed within one delivery before waiting for the next event.
MAX_IMMEDIATE_REQUEUES = 3

# Serialises event and timer deliveries for the same cluster.
reconcile_locks = defaultdict(threading.Lock)
_locks_guard = threading.Lock()


def get_reconciler():
    """ Get the reconciler created at operator startup.
    """
    from zookeeper_operator.main import reconciler

    if reconciler is None:
        raise kopf.TemporaryError("Reconciler not initialised", delay=5)
    return reconciler


def release_lock(namespace, name):
    """Forget the lock of a cluster that no longer exists."""
    with _locks_guard:
        reconcile_locks.pop((namespace, name), None)


def run_reconcile(namespace, name, reconciler=None):
    """ Reconcile one cluster, holding its lock for the whole cycle.

    Immediate requeues (after defaults were written) are honoured in place.
    The lock is dropped once the cluster is found to be gone.
    """
    reconciler = reconciler or get_reconciler()
    with _locks_guard:
        lock = reconcile_locks[(namespace, name)]
    with lock:
        result = reconciler.reconcile(namespace, name)
        attempts = 0
        while result.requeue and attempts < MAX_IMMEDIATE_REQUEUES:
            attempts += 1
            result = reconciler.reconcile(namespace, name)
    if not result.exists:
        release_lock(namespace, name)
    return result


def zookeepercluster_event(event, body, name, namespace, **kwargs):
    """Reconcile on every watch event except deletions."""
    if event.get("type") == "DELETED":
        release_lock(namespace, name)
        return
    try:
        run_reconcile(namespace, name)
    except ZookeeperOperatorError as e:
        logger.warning(f"Reconcile of {namespace}/{name} failed, retrying on next timer: {e}")
        kopf.warn(body, reason="ReconcileFailed", message=str(e))
        return
    if event.get("type") == "ADDED":
        kopf.info(body, reason="Reconciled", message=f"ZookeeperCluster {name} reconciled")


def zookeepercluster_timer(body, name, namespace, **kwargs):
    """Periodic reconcile; failures are retried by kopf with a class-specific delay."""
    try:
        run_reconcile(namespace, name)
    except ZookeeperOperatorError as e:
        raise kopf.TemporaryError(str(e), delay=retry_delay(e)) from e


def register_handlers(config):
    """ Register kopf handlers for ZookeeperClusters.

    Args:
        config: OperatorConfig providing the reconcile interval
    """
    logger.info("Registering ZookeeperCluster handlers...")
    kopf.on.event(GROUP, VERSION, PLURAL)(zookeepercluster_event)
    kopf.timer(
        GROUP,
        VERSION,
        PLURAL,
        interval=config.reconcile_interval,
        initial_delay=config.reconcile_interval,
    )(zookeepercluster_timer)
