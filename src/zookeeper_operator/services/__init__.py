"""Reconcile stages and external clients for the zookeeper operator."""
