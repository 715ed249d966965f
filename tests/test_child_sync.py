"""Test get-or-create-or-merge synchronization of child objects."""

from zookeeper_operator.services import child_sync, resources
from zookeeper_operator.services.client import (
    CONFIG_MAP,
    PDB,
    SERVICE,
    SERVICE_ACCOUNT,
)


class TestIdempotence:
    def test_second_sync_of_every_child_writes_nothing(self, store, make_cluster):
        cluster = make_cluster()
        stages = [
            child_sync.sync_config_map,
            child_sync.sync_client_service,
            child_sync.sync_headless_service,
            child_sync.sync_admin_server_service,
            child_sync.sync_pod_disruption_budget,
        ]
        for stage in stages:
            stage(store, cluster)
        created = list(store.writes)
        assert [w[0] for w in created] == ["create"] * len(stages)

        for stage in stages:
            stage(store, cluster)
        assert store.writes == created

    def test_sync_child_reports_outcome(self, store, make_cluster):
        cluster = make_cluster()
        desired = resources.make_config_map(cluster)
        result, _ = child_sync.sync_child(
            store, cluster, CONFIG_MAP, desired, child_sync.merge_config_map
        )
        assert result == "created"

        result, _ = child_sync.sync_child(
            store, cluster, CONFIG_MAP, resources.make_config_map(cluster), child_sync.merge_config_map
        )
        assert result == "unchanged"

        cluster.spec.conf.tickTime = 4000
        result, cm = child_sync.sync_child(
            store, cluster, CONFIG_MAP, resources.make_config_map(cluster), child_sync.merge_config_map
        )
        assert result == "updated"
        assert "tickTime=4000" in cm["data"]["zoo.cfg"]


class TestServiceMerge:
    def test_cluster_ip_is_preserved_and_ports_follow_spec(self, store, make_cluster):
        cluster = make_cluster()
        child_sync.sync_client_service(store, cluster)
        cluster_ip = store.get(SERVICE, "default", "zk-client")["spec"]["clusterIP"]

        cluster.spec.ports[0].containerPort = 12181
        child_sync.sync_client_service(store, cluster)

        svc = store.get(SERVICE, "default", "zk-client")
        assert svc["spec"]["clusterIP"] == cluster_ip
        assert svc["spec"]["ports"][0]["port"] == 12181

    def test_client_endpoints_recorded_after_creation(self, store, make_cluster):
        cluster = make_cluster()
        child_sync.sync_client_service(store, cluster)
        assert cluster.status.internalClientEndpoint == ""

        child_sync.sync_client_service(store, cluster)
        cluster_ip = store.get(SERVICE, "default", "zk-client")["spec"]["clusterIP"]
        assert cluster.status.internalClientEndpoint == f"{cluster_ip}:2181"
        assert cluster.status.externalClientEndpoint == "N/A"

    def test_load_balancer_endpoint(self, store, make_cluster):
        cluster = make_cluster({"clientService": {"type": "LoadBalancer"}})
        child_sync.sync_client_service(store, cluster)
        store.patch(
            SERVICE,
            "default",
            "zk-client",
            lambda obj: obj.update({"status": {"loadBalancer": {"ingress": [{"ip": "1.2.3.4"}]}}}),
        )
        child_sync.sync_client_service(store, cluster)
        assert cluster.status.externalClientEndpoint == "1.2.3.4:2181"

    def test_headless_service_has_no_cluster_ip(self, store, make_cluster):
        cluster = make_cluster()
        child_sync.sync_headless_service(store, cluster)
        svc = store.get(SERVICE, "default", "zk-headless")
        assert svc["spec"]["clusterIP"] == "None"
        assert svc["spec"]["publishNotReadyAddresses"] is True


class TestOtherChildren:
    def test_pdb_threshold_follows_spec(self, store, make_cluster):
        cluster = make_cluster()
        child_sync.sync_pod_disruption_budget(store, cluster)
        cluster.spec.maxUnavailableReplicas = 2
        child_sync.sync_pod_disruption_budget(store, cluster)
        assert store.get(PDB, "default", "zk")["spec"]["maxUnavailable"] == 2

    def test_default_service_account_is_not_managed(self, store, make_cluster):
        cluster = make_cluster()
        child_sync.sync_service_account(store, cluster)
        assert store.writes_of(SERVICE_ACCOUNT) == []

    def test_custom_service_account_is_created(self, store, make_cluster):
        cluster = make_cluster(
            {"pod": {"serviceAccountName": "zookeeper", "imagePullSecrets": [{"name": "regcred"}]}}
        )
        child_sync.sync_service_account(store, cluster)
        sa = store.get(SERVICE_ACCOUNT, "default", "zookeeper")
        assert sa["imagePullSecrets"] == [{"name": "regcred"}]
        assert sa["metadata"]["ownerReferences"][0]["name"] == "zk"

    def test_labels_are_layered_not_replaced(self, store, make_cluster):
        cluster = make_cluster()
        child_sync.sync_config_map(store, cluster)
        store.patch(
            CONFIG_MAP,
            "default",
            "zk-configmap",
            lambda obj: obj["metadata"]["labels"].update({"team": "storage"}),
        )
        child_sync.sync_config_map(store, cluster)
        labels = store.get(CONFIG_MAP, "default", "zk-configmap")["metadata"]["labels"]
        assert labels["team"] == "storage"
        assert labels["app"] == "zk"
