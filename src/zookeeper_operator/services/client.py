""" Object store adapter over the Kubernetes API.

Every object crosses this boundary as a plain dict with camelCase keys, the
shape the API server returns, so the synchronizers can compare and merge
objects without caring about client model classes.
"""

import logging

import kubernetes
from kubernetes.client.exceptions import ApiException

from zookeeper_operator.errors import ConflictError, TransientError
from zookeeper_operator.models.zookeeper import GROUP, PLURAL, VERSION

logger = logging.getLogger(__name__)

CONFIG_MAP = "ConfigMap"
SERVICE = "Service"
SERVICE_ACCOUNT = "ServiceAccount"
POD = "Pod"
PVC = "PersistentVolumeClaim"
STATEFUL_SET = "StatefulSet"
PDB = "PodDisruptionBudget"

# kind -> (api class, method suffix)
KIND_APIS = {
    CONFIG_MAP: ("CoreV1Api", "config_map"),
    SERVICE: ("CoreV1Api", "service"),
    SERVICE_ACCOUNT: ("CoreV1Api", "service_account"),
    POD: ("CoreV1Api", "pod"),
    PVC: ("CoreV1Api", "persistent_volume_claim"),
    STATEFUL_SET: ("AppsV1Api", "stateful_set"),
    PDB: ("PolicyV1Api", "pod_disruption_budget"),
}


def label_selector(labels):
    """ Render a label dict as an equality-based selector string.
    """
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


def _convert_api_exception(e, action, kind, name):
    if e.status == 409:
        return ConflictError(f"Conflict on {action} {kind} {name}: {e.reason}")
    return TransientError(f"Failed to {action} {kind} {name}: {e.status} {e.reason}")


class KubeStore:
    """ Get/create/update/list/delete per kind with optimistic concurrency.

    Args:
        api_client: Optional kubernetes ApiClient (defaults to the loaded config)
    """

    def __init__(self, api_client=None):
        self.api_client = api_client or kubernetes.client.ApiClient()
        self._apis = {}

    def _api(self, kind):
        api_name, suffix = KIND_APIS[kind]
        if api_name not in self._apis:
            api_class = getattr(kubernetes.client, api_name)
            self._apis[api_name] = api_class(self.api_client)
        return self._apis[api_name], suffix

    def _to_dict(self, obj):
        return self.api_client.sanitize_for_serialization(obj)

    def get(self, kind, namespace, name):
        """ Fetch an object, returning None when it does not exist.
        """
        api, suffix = self._api(kind)
        try:
            obj = getattr(api, f"read_namespaced_{suffix}")(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            logger.error(f"Failed to read {kind} {namespace}/{name}: {e}")
            raise _convert_api_exception(e, "read", kind, name) from e
        return self._to_dict(obj)

    def create(self, kind, body):
        api, suffix = self._api(kind)
        namespace = body["metadata"]["namespace"]
        name = body["metadata"]["name"]
        try:
            obj = getattr(api, f"create_namespaced_{suffix}")(namespace=namespace, body=body)
        except ApiException as e:
            logger.error(f"Failed to create {kind} {namespace}/{name}: {e}")
            raise _convert_api_exception(e, "create", kind, name) from e
        return self._to_dict(obj)

    def update(self, kind, body):
        """ Replace an object; fails with ConflictError if it changed since read.
        """
        api, suffix = self._api(kind)
        namespace = body["metadata"]["namespace"]
        name = body["metadata"]["name"]
        try:
            obj = getattr(api, f"replace_namespaced_{suffix}")(
                name=name, namespace=namespace, body=body
            )
        except ApiException as e:
            logger.error(f"Failed to update {kind} {namespace}/{name}: {e}")
            raise _convert_api_exception(e, "update", kind, name) from e
        return self._to_dict(obj)

    def list(self, kind, namespace, labels):
        api, suffix = self._api(kind)
        try:
            result = getattr(api, f"list_namespaced_{suffix}")(
                namespace=namespace, label_selector=label_selector(labels)
            )
        except ApiException as e:
            logger.error(f"Failed to list {kind} in {namespace}: {e}")
            raise _convert_api_exception(e, "list", kind, namespace) from e
        return [self._to_dict(item) for item in result.items]

    def delete(self, kind, namespace, name):
        """ Delete an object; a missing object counts as deleted.
        """
        api, suffix = self._api(kind)
        try:
            getattr(api, f"delete_namespaced_{suffix}")(name=name, namespace=namespace)
            logger.info(f"Deleted {kind} {name} from {namespace}")
        except ApiException as e:
            if e.status == 404:
                logger.info(f"{kind} {name} not found in {namespace} (already deleted)")
                return
            logger.error(f"Failed to delete {kind} {namespace}/{name}: {e}")
            raise _convert_api_exception(e, "delete", kind, name) from e

    # ZookeeperCluster objects

    def _custom_api(self):
        if "CustomObjectsApi" not in self._apis:
            self._apis["CustomObjectsApi"] = kubernetes.client.CustomObjectsApi(self.api_client)
        return self._apis["CustomObjectsApi"]

    def get_cluster(self, namespace, name):
        try:
            return self._custom_api().get_namespaced_custom_object(
                group=GROUP, version=VERSION, namespace=namespace, plural=PLURAL, name=name
            )
        except ApiException as e:
            if e.status == 404:
                return None
            logger.error(f"Failed to read ZookeeperCluster {namespace}/{name}: {e}")
            raise _convert_api_exception(e, "read", "ZookeeperCluster", name) from e

    def update_cluster(self, body):
        """ Replace metadata and spec of a cluster (status is ignored by the API).
        """
        namespace = body["metadata"]["namespace"]
        name = body["metadata"]["name"]
        try:
            return self._custom_api().replace_namespaced_custom_object(
                group=GROUP, version=VERSION, namespace=namespace, plural=PLURAL,
                name=name, body=body,
            )
        except ApiException as e:
            logger.error(f"Failed to update ZookeeperCluster {namespace}/{name}: {e}")
            raise _convert_api_exception(e, "update", "ZookeeperCluster", name) from e

    def update_cluster_status(self, body):
        namespace = body["metadata"]["namespace"]
        name = body["metadata"]["name"]
        try:
            return self._custom_api().replace_namespaced_custom_object_status(
                group=GROUP, version=VERSION, namespace=namespace, plural=PLURAL,
                name=name, body=body,
            )
        except ApiException as e:
            logger.error(f"Failed to update status of ZookeeperCluster {namespace}/{name}: {e}")
            raise _convert_api_exception(e, "update status", "ZookeeperCluster", name) from e


def persist_cluster(store, cluster):
    """ Write metadata and spec of a cluster, keeping its in-memory status.

    The new resourceVersion is carried back so later writes in the same
    cycle do not conflict with this one.
    """
    updated = store.update_cluster(cluster.to_body())
    cluster.metadata.resourceVersion = updated["metadata"].get("resourceVersion")
    return cluster


def persist_cluster_status(store, cluster):
    updated = store.update_cluster_status(cluster.to_body())
    cluster.metadata.resourceVersion = updated["metadata"].get("resourceVersion")
    return cluster
