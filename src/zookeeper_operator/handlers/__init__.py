"""Handler modules for the zookeeper operator."""

from . import zookeepercluster_handler

__all__ = ["zookeepercluster_handler"]
