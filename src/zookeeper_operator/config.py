""" Operator configuration loaded from the environment.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_NAMESPACE_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


def _env_bool(key, default="false"):
    return os.getenv(key, default).lower() in ("true", "1", "yes")


class OperatorConfig(BaseModel):
    """Process-wide settings threaded into the reconciler."""

    watch_namespaces: List[str] = Field(
        default_factory=list, description="Namespaces to watch; empty means cluster-wide"
    )
    disable_finalizer: bool = Field(
        default=False, description="Never attach the PVC cleanup finalizer"
    )
    reconcile_interval: float = Field(
        default=30.0, description="Seconds between periodic reconciles"
    )
    upgrade_timeout: float = Field(
        default=600.0, description="Seconds without rollout progress before an upgrade fails"
    )
    zk_connect_timeout: float = Field(
        default=10.0, description="Seconds to wait for a ZooKeeper session"
    )
    worker_limit: int = Field(default=5)
    server_timeout: int = Field(default=60)
    leader_lock_name: str = Field(default="zookeeper-operator-lock")
    standalone: bool = Field(
        default=False, description="Skip leader election (single replica deployments)"
    )

    class Config:
        validate_assignment = True

    @classmethod
    def from_env(cls, **overrides):
        """ Build the configuration from environment variables.

        Args:
            overrides: Values that take precedence over the environment (CLI flags)
        """
        values = {
            "watch_namespaces": get_watch_namespaces(),
            "disable_finalizer": _env_bool("DISABLE_FINALIZER"),
            "reconcile_interval": float(os.getenv("RECONCILE_INTERVAL", "30")),
            "upgrade_timeout": float(os.getenv("UPGRADE_TIMEOUT", "600")),
            "zk_connect_timeout": float(os.getenv("ZK_CONNECT_TIMEOUT", "10")),
            "worker_limit": int(os.getenv("WORKER_LIMIT", "5")),
            "server_timeout": int(os.getenv("SERVER_TIMEOUT", "60")),
            "leader_lock_name": os.getenv("LEADER_LOCK_NAME", "zookeeper-operator-lock"),
            "standalone": _env_bool("STANDALONE"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def get_watch_namespaces():
    """ Namespaces listed in WATCH_NAMESPACE.

    An absent or empty variable means the operator runs cluster-wide.
    """
    raw = os.getenv("WATCH_NAMESPACE")
    if raw is None:
        logger.warning("WATCH_NAMESPACE is not set, watching all namespaces")
        return []
    return [ns.strip() for ns in raw.split(",") if ns.strip()]


def get_operator_namespace(path=SERVICE_ACCOUNT_NAMESPACE_FILE) -> Optional[str]:
    """ Read the operator's own namespace from the mounted service account.

    Args:
        path: Location of the service account namespace file
    """
    try:
        return Path(path).read_text().strip()
    except FileNotFoundError:
        logger.warning(f"Service account namespace file {path} does not exist")
        return None
