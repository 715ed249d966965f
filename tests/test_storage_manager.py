"""Test finalizer handling and PVC cleanup."""

import pytest

from zookeeper_operator.errors import TransientError
from zookeeper_operator.models.zookeeper import KIND, ZookeeperCluster
from zookeeper_operator.services.client import PVC
from zookeeper_operator.services.storage_manager import (
    PVC_FINALIZER,
    StorageLifecycleManager,
    get_pvc_ordinal,
    is_pvc_orphan,
)

DELETE_POLICY = {"persistence": {"reclaimPolicy": "Delete"}}


def _add_pvcs(store, count, uid="uid-zk"):
    for i in range(count):
        store.add(
            PVC,
            {"metadata": {"name": f"data-zk-{i}", "labels": {"app": "zk", "uid": uid}}},
        )


def _pvc_names(store):
    return sorted(pvc["metadata"]["name"] for pvc in store.list(PVC, "default", {"app": "zk"}))


def _reload(store):
    cluster = ZookeeperCluster.from_body(store.get_cluster("default", "zk"))
    cluster.with_defaults()
    return cluster


class TestOrphanDetection:
    @pytest.mark.parametrize(
        "ordinal, orphan",
        [(0, False), (1, False), (2, False), (3, True), (4, True), (5, True)],
    )
    def test_ordinals_beyond_replicas_are_orphans(self, ordinal, orphan):
        assert is_pvc_orphan(f"data-zk-{ordinal}", 3) is orphan

    def test_unparsable_names_are_never_orphans(self):
        assert get_pvc_ordinal("data") is None
        assert get_pvc_ordinal("data-zk-x") is None
        assert is_pvc_orphan("data-zk-x", 0) is False


class TestOrphanCleanup:
    def test_orphans_deleted_when_ready(self, store, make_cluster):
        cluster = make_cluster(DELETE_POLICY, status={"readyReplicas": 3})
        _add_pvcs(store, 5)

        StorageLifecycleManager(store).cleanup_orphan_pvcs(cluster)
        assert _pvc_names(store) == ["data-zk-0", "data-zk-1", "data-zk-2"]

    def test_nothing_deleted_while_not_ready(self, store, make_cluster):
        cluster = make_cluster(DELETE_POLICY, status={"readyReplicas": 2})
        _add_pvcs(store, 5)

        StorageLifecycleManager(store).cleanup_orphan_pvcs(cluster)
        assert len(_pvc_names(store)) == 5

    def test_pvcs_of_other_clusters_are_ignored(self, store, make_cluster):
        cluster = make_cluster(DELETE_POLICY, status={"readyReplicas": 3})
        _add_pvcs(store, 3)
        store.add(PVC, {"metadata": {"name": "data-other-7", "labels": {"app": "zk", "uid": "other"}}})

        StorageLifecycleManager(store).cleanup_orphan_pvcs(cluster)
        assert store.get(PVC, "default", "data-other-7") is not None

    def test_delete_failure_does_not_block_the_rest(self, store, make_cluster):
        cluster = make_cluster(DELETE_POLICY, status={"readyReplicas": 3})
        _add_pvcs(store, 5)
        store.fail_delete.add("data-zk-3")

        StorageLifecycleManager(store).cleanup_orphan_pvcs(cluster)
        assert _pvc_names(store) == ["data-zk-0", "data-zk-1", "data-zk-2", "data-zk-3"]


class TestFinalizers:
    def test_finalizer_attached_for_delete_policy(self, store, make_cluster):
        cluster = make_cluster(DELETE_POLICY)
        StorageLifecycleManager(store).reconcile_finalizers(cluster)
        assert store.get_cluster("default", "zk")["metadata"]["finalizers"] == [PVC_FINALIZER]

    def test_finalizer_not_attached_when_disabled(self, store, make_cluster):
        cluster = make_cluster(DELETE_POLICY)
        StorageLifecycleManager(store, disable_finalizer=True).reconcile_finalizers(cluster)
        assert store.writes_of(KIND) == []

    def test_retain_policy_never_touches_storage(self, store, make_cluster):
        cluster = make_cluster()
        _add_pvcs(store, 3)
        StorageLifecycleManager(store).reconcile_finalizers(cluster)
        assert store.writes == []

    def test_deletion_cleans_all_pvcs_before_removing_finalizer(self, store, make_cluster):
        cluster = make_cluster(DELETE_POLICY)
        manager = StorageLifecycleManager(store)
        manager.reconcile_finalizers(cluster)
        _add_pvcs(store, 3)
        store.patch(
            KIND,
            "default",
            "zk",
            lambda obj: obj["metadata"].update({"deletionTimestamp": "2024-01-01T00:00:00Z"}),
        )

        manager.reconcile_finalizers(_reload(store))

        ops = [(op, kind) for op, kind, _ in store.writes]
        assert ops[-4:] == [("delete", PVC)] * 3 + [("update", KIND)]
        assert _pvc_names(store) == []
        assert store.get_cluster("default", "zk") is None

    def test_failed_cleanup_keeps_pvcs_for_next_cycle(self, store, make_cluster):
        cluster = make_cluster(DELETE_POLICY)
        manager = StorageLifecycleManager(store)
        manager.reconcile_finalizers(cluster)
        _add_pvcs(store, 2)
        store.fail_delete.add("data-zk-1")
        store.patch(
            KIND,
            "default",
            "zk",
            lambda obj: obj["metadata"].update({"deletionTimestamp": "2024-01-01T00:00:00Z"}),
        )

        with pytest.raises(TransientError):
            manager.reconcile_finalizers(_reload(store))
        assert _pvc_names(store) == ["data-zk-1"]
        assert store.get_cluster("default", "zk")["metadata"]["finalizers"] == [PVC_FINALIZER]
