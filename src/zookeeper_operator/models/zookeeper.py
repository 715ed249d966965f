"""ZookeeperCluster CRD models."""

import copy
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from zookeeper_operator.crd.base import (
    ConditionStatus,
    ConditionType,
    CRDSpec,
    CRDStatus,
    ObjectMeta,
)

GROUP = "zookeeper.pravega.io"
VERSION = "v1beta1"
KIND = "ZookeeperCluster"
PLURAL = "zookeeperclusters"

DEFAULT_REPLICAS = 3
DEFAULT_REPOSITORY = "pravega/zookeeper"
DEFAULT_TAG = "0.2.15"
DEFAULT_PULL_POLICY = "IfNotPresent"
DEFAULT_CLUSTER_DOMAIN = "cluster.local"
DEFAULT_STORAGE = "20Gi"
DEFAULT_SERVICE_ACCOUNT = "default"

RECLAIM_RETAIN = "Retain"
RECLAIM_DELETE = "Delete"

STORAGE_PERSISTENCE = "persistence"
STORAGE_EPHEMERAL = "ephemeral"

UPDATING_ZOOKEEPER_REASON = "Updating Zookeeper"
UPGRADE_FAILED_REASON = "UpgradeFailed"

DEFAULT_PORTS = [
    {"name": "client", "containerPort": 2181},
    {"name": "quorum", "containerPort": 2888},
    {"name": "leader-election", "containerPort": 3888},
    {"name": "metrics", "containerPort": 7000},
    {"name": "admin-server", "containerPort": 8080},
]


class ImageSpec(CRDSpec):
    """Container image of the ensemble members."""

    repository: Optional[str] = None
    tag: Optional[str] = None
    pullPolicy: Optional[str] = None

    def with_defaults(self):
        changed = False
        if not self.repository:
            self.repository = DEFAULT_REPOSITORY
            changed = True
        if not self.tag:
            self.tag = DEFAULT_TAG
            changed = True
        if not self.pullPolicy:
            self.pullPolicy = DEFAULT_PULL_POLICY
            changed = True
        return changed

    def to_string(self):
        return f"{self.repository}:{self.tag}"


class ContainerPort(CRDSpec):
    name: str
    containerPort: int


class ZookeeperConfig(CRDSpec):
    """zoo.cfg tunables rendered into the config map."""

    initLimit: Optional[int] = None
    tickTime: Optional[int] = None
    syncLimit: Optional[int] = None
    globalOutstandingLimit: Optional[int] = None
    preAllocSize: Optional[int] = None
    snapCount: Optional[int] = None
    commitLogCount: Optional[int] = None
    snapSizeLimitInKb: Optional[int] = None
    maxCnxns: Optional[int] = None
    maxClientCnxns: Optional[int] = None
    minSessionTimeout: Optional[int] = None
    maxSessionTimeout: Optional[int] = None
    autoPurgeSnapRetainCount: Optional[int] = None
    autoPurgePurgeInterval: Optional[int] = None
    quorumListenOnAllIPs: Optional[bool] = None
    additionalConfig: Dict[str, str] = Field(default_factory=dict)

    def with_defaults(self):
        defaults = {
            "initLimit": 10,
            "tickTime": 2000,
            "syncLimit": 2,
            "globalOutstandingLimit": 1000,
            "preAllocSize": 65536,
            "snapCount": 10000,
            "commitLogCount": 500,
            "snapSizeLimitInKb": 4194304,
            "maxClientCnxns": 60,
            "autoPurgeSnapRetainCount": 3,
            "autoPurgePurgeInterval": 1,
            "quorumListenOnAllIPs": False,
        }
        changed = False
        for key, value in defaults.items():
            if getattr(self, key) is None:
                setattr(self, key, value)
                changed = True
        if self.maxCnxns is None:
            self.maxCnxns = 0
            changed = True
        if self.minSessionTimeout is None:
            self.minSessionTimeout = 2 * self.tickTime
            changed = True
        if self.maxSessionTimeout is None:
            self.maxSessionTimeout = 20 * self.tickTime
            changed = True
        return changed


class Persistence(CRDSpec):
    """Persistent volume settings for the data directory."""

    reclaimPolicy: Optional[str] = None
    spec: Optional[Dict[str, Any]] = None

    def with_defaults(self):
        changed = False
        if self.reclaimPolicy not in (RECLAIM_RETAIN, RECLAIM_DELETE):
            self.reclaimPolicy = RECLAIM_RETAIN
            changed = True
        if not self.spec:
            self.spec = {
                "accessModes": ["ReadWriteOnce"],
                "resources": {"requests": {"storage": DEFAULT_STORAGE}},
            }
            changed = True
        return changed


class PodPolicy(CRDSpec):
    """Pod-level settings copied into the statefulset template."""

    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    serviceAccountName: Optional[str] = None
    imagePullSecrets: List[Dict[str, str]] = Field(default_factory=list)
    terminationGracePeriodSeconds: Optional[int] = None
    env: List[Dict[str, Any]] = Field(default_factory=list)
    resources: Dict[str, Any] = Field(default_factory=dict)
    nodeSelector: Dict[str, str] = Field(default_factory=dict)
    tolerations: List[Dict[str, Any]] = Field(default_factory=list)
    affinity: Optional[Dict[str, Any]] = None

    def with_defaults(self, name):
        changed = False
        if "app" not in self.labels:
            self.labels = {**self.labels, "app": name}
            changed = True
        if "kind" not in self.labels:
            self.labels = {**self.labels, "kind": "ZookeeperMember"}
            changed = True
        if self.terminationGracePeriodSeconds is None:
            self.terminationGracePeriodSeconds = 30
            changed = True
        if not self.serviceAccountName:
            self.serviceAccountName = DEFAULT_SERVICE_ACCOUNT
            changed = True
        return changed


class ServicePolicy(CRDSpec):
    type: Optional[str] = None
    annotations: Dict[str, str] = Field(default_factory=dict)


class ZookeeperClusterSpec(CRDSpec):
    """ZookeeperCluster CRD specification."""

    replicas: Optional[int] = Field(default=None, description="Number of ensemble members")
    image: Optional[ImageSpec] = Field(default=None, description="Member container image")
    labels: Optional[Dict[str, str]] = Field(
        default=None, description="Labels applied to every child object"
    )
    ports: Optional[List[ContainerPort]] = None
    conf: Optional[ZookeeperConfig] = None
    storageType: Optional[str] = Field(
        default=None, description="persistence or ephemeral"
    )
    persistence: Optional[Persistence] = None
    pod: Optional[PodPolicy] = None
    clientService: Optional[ServicePolicy] = None
    headlessService: Optional[ServicePolicy] = None
    adminServerService: Optional[ServicePolicy] = None
    kubernetesClusterDomain: Optional[str] = None
    maxUnavailableReplicas: Optional[int] = None
    triggerRollingRestart: Optional[bool] = Field(
        default=None, description="Set to true to restart every member once"
    )

    def with_defaults(self, name):
        """ Fill unset fields in place.

        Args:
            name: Name of the owning cluster, used for default labels

        Returns:
            bool: True when any field was changed
        """
        changed = False
        if not self.replicas:
            self.replicas = DEFAULT_REPLICAS
            changed = True
        if self.image is None:
            self.image = ImageSpec()
        changed = self.image.with_defaults() or changed
        labels = dict(self.labels or {})
        for key in ("app", "release"):
            if key not in labels:
                labels[key] = name
        if labels != self.labels:
            self.labels = labels
            changed = True
        if self.ports is None:
            self.ports = [ContainerPort(**port) for port in DEFAULT_PORTS]
            changed = True
        else:
            present = {port.name for port in self.ports}
            missing = [ContainerPort(**p) for p in DEFAULT_PORTS if p["name"] not in present]
            if missing:
                self.ports = self.ports + missing
                changed = True
        if self.conf is None:
            self.conf = ZookeeperConfig()
        changed = self.conf.with_defaults() or changed
        if self.storageType not in (STORAGE_PERSISTENCE, STORAGE_EPHEMERAL):
            self.storageType = STORAGE_PERSISTENCE
            changed = True
        if self.storageType == STORAGE_PERSISTENCE:
            if self.persistence is None:
                self.persistence = Persistence()
            changed = self.persistence.with_defaults() or changed
        if self.pod is None:
            self.pod = PodPolicy()
        changed = self.pod.with_defaults(name) or changed
        if not self.kubernetesClusterDomain:
            self.kubernetesClusterDomain = DEFAULT_CLUSTER_DOMAIN
            changed = True
        if self.maxUnavailableReplicas is None:
            self.maxUnavailableReplicas = 1
            changed = True
        return changed

    def port(self, name):
        for port in self.ports or []:
            if port.name == name:
                return port.containerPort
        for port in DEFAULT_PORTS:
            if port["name"] == name:
                return port["containerPort"]
        return None

    @property
    def reclaim_policy(self):
        if self.persistence is None:
            return None
        return self.persistence.reclaimPolicy


class MembersStatus(BaseModel):
    ready: List[str] = Field(default_factory=list)
    unready: List[str] = Field(default_factory=list)


class ZookeeperClusterStatus(CRDStatus):
    """Observed state of the ensemble, written only by the operator."""

    replicas: int = 0
    readyReplicas: int = 0
    currentVersion: str = ""
    targetVersion: str = ""
    internalClientEndpoint: str = ""
    externalClientEndpoint: str = ""
    metaRootCreated: bool = False
    members: MembersStatus = Field(default_factory=MembersStatus)

    def init_conditions(self):
        for condition_type in ConditionType:
            if self.get_condition(condition_type) is None:
                self.set_condition(condition_type, ConditionStatus.FALSE)

    def is_ready(self):
        return self.is_condition_true(ConditionType.READY)

    def is_upgrading(self):
        return self.is_condition_true(ConditionType.UPGRADING)

    def is_upgrade_failed(self):
        condition = self.get_condition(ConditionType.ERROR)
        return (
            condition is not None
            and condition.status == ConditionStatus.TRUE
            and condition.reason == UPGRADE_FAILED_REASON
        )

    def set_pods_ready(self, ready):
        status = ConditionStatus.TRUE if ready else ConditionStatus.FALSE
        self.set_condition(ConditionType.READY, status)

    def set_upgrading_true(self, reason="", message=""):
        self.set_condition(ConditionType.UPGRADING, ConditionStatus.TRUE, reason, message)

    def set_upgrading_false(self):
        self.set_condition(ConditionType.UPGRADING, ConditionStatus.FALSE)

    def set_error_true(self, reason, message):
        self.set_condition(ConditionType.ERROR, ConditionStatus.TRUE, reason, message)

    def set_error_false(self):
        self.set_condition(ConditionType.ERROR, ConditionStatus.FALSE)

    def update_progress(self, reason, updated_replicas):
        if self.is_upgrading():
            self.set_upgrading_true(reason, str(updated_replicas))


class ZookeeperCluster(BaseModel):
    """A ZookeeperCluster object as read from the API server."""

    apiVersion: str = f"{GROUP}/{VERSION}"
    kind: str = KIND
    metadata: ObjectMeta
    spec: ZookeeperClusterSpec = Field(default_factory=ZookeeperClusterSpec)
    status: ZookeeperClusterStatus = Field(default_factory=ZookeeperClusterStatus)

    class Config:
        extra = "allow"
        validate_assignment = True

    @classmethod
    def from_body(cls, body):
        body = copy.deepcopy(dict(body))
        if body.get("spec") is None:
            body["spec"] = {}
        if body.get("status") is None:
            body["status"] = {}
        return cls.model_validate(body)

    def to_body(self):
        return self.model_dump(mode="json", exclude_none=True)

    @property
    def name(self):
        return self.metadata.name

    @property
    def namespace(self):
        return self.metadata.namespace

    def is_being_deleted(self):
        return bool(self.metadata.deletionTimestamp)

    def with_defaults(self):
        return self.spec.with_defaults(self.name)

    def owner_reference(self):
        return {
            "apiVersion": self.apiVersion,
            "kind": self.kind,
            "name": self.name,
            "uid": self.metadata.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }

    def client_service_name(self):
        return f"{self.name}-client"

    def headless_service_name(self):
        return f"{self.name}-headless"

    def admin_server_service_name(self):
        return f"{self.name}-admin-server"

    def config_map_name(self):
        return f"{self.name}-configmap"

    def zk_service_uri(self):
        """Address of the ensemble through its client service."""
        domain = self.spec.kubernetesClusterDomain or DEFAULT_CLUSTER_DOMAIN
        port = self.spec.port("client")
        return f"{self.client_service_name()}.{self.namespace}.svc.{domain}:{port}"

    def meta_path(self):
        return f"/zookeeper-operator/{self.name}"
