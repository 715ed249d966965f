"""Test configuration and fixtures."""

import copy

import pytest

from zookeeper_operator.errors import ConflictError, ExternalStoreError, TransientError
from zookeeper_operator.models.zookeeper import KIND, ZookeeperCluster
from zookeeper_operator.services.client import POD, SERVICE, STATEFUL_SET


class FakeStore:
    """In-memory object store with resource versions and optimistic concurrency."""

    def __init__(self):
        self.objects = {}
        self.writes = []
        self.fail_delete = set()
        self._rv = 0
        self._ips = 0

    def _next_rv(self):
        self._rv += 1
        return str(self._rv)

    def _key(self, kind, body):
        meta = body["metadata"]
        return (kind, meta["namespace"], meta["name"])

    def add(self, kind, obj):
        """Store an object as if another actor had created it."""
        obj = copy.deepcopy(obj)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("namespace", "default")
        meta.setdefault("uid", f"uid-{meta['name']}")
        meta["resourceVersion"] = self._next_rv()
        self.objects[self._key(kind, obj)] = obj
        return copy.deepcopy(obj)

    def patch(self, kind, namespace, name, fn):
        """Mutate a stored object out of band, bumping its resource version."""
        obj = self.objects[(kind, namespace, name)]
        fn(obj)
        obj["metadata"]["resourceVersion"] = self._next_rv()

    def get(self, kind, namespace, name):
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def create(self, kind, body):
        key = self._key(kind, body)
        if key in self.objects:
            raise ConflictError(f"{kind} {key[2]} already exists")
        obj = copy.deepcopy(body)
        meta = obj["metadata"]
        meta["resourceVersion"] = self._next_rv()
        meta.setdefault("uid", f"uid-{meta['name']}")
        if kind == SERVICE and obj["spec"].get("clusterIP") is None:
            self._ips += 1
            obj["spec"]["clusterIP"] = f"10.96.0.{self._ips}"
        self.objects[key] = obj
        self.writes.append(("create", kind, meta["name"]))
        return copy.deepcopy(obj)

    def _replace(self, kind, body, op, keep):
        key = self._key(kind, body)
        stored = self.objects.get(key)
        if stored is None:
            raise TransientError(f"{kind} {key[2]} not found")
        if body["metadata"].get("resourceVersion") != stored["metadata"]["resourceVersion"]:
            raise ConflictError(f"{kind} {key[2]} was modified")
        obj = copy.deepcopy(body)
        for field, value in keep(stored).items():
            if value is None:
                obj.pop(field, None)
            else:
                obj[field] = copy.deepcopy(value)
        obj["metadata"]["resourceVersion"] = self._next_rv()
        self.objects[key] = obj
        self.writes.append((op, kind, key[2]))
        return obj

    def update(self, kind, body):
        obj = self._replace(kind, body, "update", lambda s: {"status": s.get("status")})
        return copy.deepcopy(obj)

    def list(self, kind, namespace, labels):
        items = []
        for (obj_kind, obj_ns, _), obj in sorted(self.objects.items()):
            obj_labels = obj["metadata"].get("labels") or {}
            if obj_kind == kind and obj_ns == namespace and labels.items() <= obj_labels.items():
                items.append(copy.deepcopy(obj))
        return items

    def delete(self, kind, namespace, name):
        if name in self.fail_delete:
            raise TransientError(f"Failed to delete {kind} {name}")
        self.objects.pop((kind, namespace, name), None)
        self.writes.append(("delete", kind, name))

    def get_cluster(self, namespace, name):
        return self.get(KIND, namespace, name)

    def update_cluster(self, body):
        obj = self._replace(KIND, body, "update", lambda s: {"status": s.get("status")})
        meta = obj["metadata"]
        if meta.get("deletionTimestamp") and not meta.get("finalizers"):
            del self.objects[self._key(KIND, obj)]
        return copy.deepcopy(obj)

    def update_cluster_status(self, body):
        obj = self._replace(KIND, body, "update_status", lambda s: {"spec": s.get("spec")})
        return copy.deepcopy(obj)

    def writes_of(self, kind):
        return [w for w in self.writes if w[1] == kind]


class FakeZkClient:
    """Stands in for ZookeeperClient; znodes live in a dict of path -> (data, version)."""

    def __init__(self):
        self.nodes = {}
        self.connected = False
        self.connects = []
        self.fail_connect = False
        self.fail_update = False

    def connect(self, uri):
        if self.fail_connect:
            raise ExternalStoreError(f"Timed out connecting to zookeeper at {uri}")
        self.connects.append(uri)
        self.connected = True

    def node_exists(self, path):
        if path not in self.nodes:
            raise ExternalStoreError(f"Znode {path} does not exist")
        return self.nodes[path][1]

    def create_node(self, cluster, path):
        if path not in self.nodes:
            self.nodes[path] = (f"CLUSTER_SIZE={cluster.spec.replicas}", 0)

    def update_node(self, path, data, version):
        if self.fail_update:
            raise ExternalStoreError(f"Error updating znode {path}")
        current = self.nodes[path]
        if current[1] != version:
            raise ExternalStoreError(f"Bad version for znode {path}")
        self.nodes[path] = (data, version + 1)

    def close(self):
        self.connected = False


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def zk():
    return FakeZkClient()


@pytest.fixture
def cluster_body():
    """Minimal ZookeeperCluster as a user would submit it."""
    return {
        "apiVersion": "zookeeper.pravega.io/v1beta1",
        "kind": "ZookeeperCluster",
        "metadata": {"name": "zk", "namespace": "default", "uid": "uid-zk"},
        "spec": {},
    }


@pytest.fixture
def make_cluster(store, cluster_body):
    """Store a cluster and return its defaulted model."""

    def _make(spec=None, status=None):
        body = copy.deepcopy(cluster_body)
        body["spec"] = spec or {}
        if status is not None:
            body["status"] = status
        stored = store.add(KIND, body)
        cluster = ZookeeperCluster.from_body(stored)
        cluster.with_defaults()
        return cluster

    return _make


def make_pod(name, ready=True, app="zk"):
    return {
        "metadata": {"name": name, "namespace": "default", "labels": {"app": app}},
        "status": {"containerStatuses": [{"name": "zookeeper", "ready": ready}]},
    }


@pytest.fixture
def add_pods(store):
    """Add ``count`` member pods of the cluster ``app``."""

    def _add(count, ready=True, app="zk"):
        for i in range(count):
            store.add(POD, make_pod(f"{app}-{i}", ready=ready, app=app))

    return _add


@pytest.fixture
def set_sts_status(store):
    """Simulate the statefulset controller reporting status."""

    def _set(name="zk", **status):
        def _apply(obj):
            obj["status"] = {**(obj.get("status") or {}), **status}

        store.patch(STATEFUL_SET, "default", name, _apply)

    return _set
