import kopf
import logging
import kubernetes
import os
import random

from zookeeper_operator.config import OperatorConfig
from zookeeper_operator.handlers.zookeepercluster_handler import register_handlers
from zookeeper_operator.reconciler import ZookeeperClusterReconciler
from zookeeper_operator.services.client import KubeStore
from zookeeper_operator.version import build_info

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Set by main() before kopf starts, read by the startup handler
operator_config = None

# Global reconciler instance, built once the Kubernetes config is loaded
reconciler = None


def load_kube_config():
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()
        logger.info("Loaded local Kubernetes config")


@kopf.on.startup()
def startup_fn(settings: kopf.OperatorSettings, **kwargs):
    """Configure kopf and build the reconciler."""
    global reconciler

    config = operator_config or OperatorConfig.from_env()
    logger.info("Zookeeper Operator is starting up...")
    for key, value in build_info().items():
        logger.info(f"{key}: {value}")

    load_kube_config()

    settings.batching.worker_limit = config.worker_limit
    settings.watching.server_timeout = config.server_timeout
    settings.posting.level = logging.INFO
    # Peering is the leader election: only the highest-priority replica processes events
    settings.peering.name = config.leader_lock_name
    settings.peering.standalone = config.standalone
    settings.peering.mandatory = not config.standalone
    settings.peering.priority = random.randint(1, 1000)

    reconciler = ZookeeperClusterReconciler(KubeStore(), config=config)

    logger.info(f"Worker limit: {settings.batching.worker_limit}")
    logger.info(f"Watched namespaces: {config.watch_namespaces or 'all'}")
    logger.info("Zookeeper Operator startup complete")


@kopf.on.cleanup()
def cleanup_fn(**kwargs):
    """Cleanup operator resources."""
    global reconciler
    logger.info("Zookeeper Operator is shutting down...")
    reconciler = None
    logger.info("Zookeeper Operator shutdown complete")


def main(config=None):
    """ Run the operator until interrupted.

    Args:
        config: OperatorConfig, read from the environment when omitted
    """
    global operator_config
    operator_config = config or OperatorConfig.from_env()
    register_handlers(operator_config)

    namespaces = operator_config.watch_namespaces
    try:
        kopf.run(
            namespaces=namespaces,
            clusterwide=not namespaces,
            standalone=operator_config.standalone,
            peering_name=operator_config.leader_lock_name,
        )
    except KeyboardInterrupt:
        logger.info("Operator stopped by user")
    except Exception as e:
        logger.error(f"Operator failed: {e}")
        raise


if __name__ == "__main__":
    main()
