"""Pydantic models for all CRDs."""

# ZookeeperCluster is the only custom resource
from . import zookeeper

__all__ = ["zookeeper"]
