"""Kubernetes operator managing ZooKeeper ensembles."""

from zookeeper_operator.version import __version__

__all__ = ["__version__"]
