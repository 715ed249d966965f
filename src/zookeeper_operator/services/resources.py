""" Desired child objects of a ZookeeperCluster, rendered from templates.
"""

import logging

import jinja2
import yaml

from zookeeper_operator.models.zookeeper import STORAGE_EPHEMERAL

logger = logging.getLogger(__name__)

OWNER_RV_LABEL = "owner-rv"

_env = jinja2.Environment(
    loader=jinja2.PackageLoader("zookeeper_operator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def render_manifest(template_name, **context):
    """ Render a YAML template into a dict.

    Args:
        template_name: File name under the package templates directory
        context: Template variables
    """
    template = _env.get_template(template_name)
    return yaml.safe_load(template.render(**context))


def render_text(template_name, **context):
    return _env.get_template(template_name).render(**context)


def _base_labels(cluster, component=None):
    labels = dict(cluster.spec.labels or {})
    labels["app"] = cluster.name
    if component:
        labels["component"] = component
    return labels


def make_config_map(cluster):
    spec = cluster.spec
    zoo_cfg = render_text(
        "zoo.cfg.j2",
        conf=spec.conf,
        metrics_port=spec.port("metrics"),
        admin_port=spec.port("admin-server"),
    )
    env_sh = render_text(
        "env.sh.j2",
        name=cluster.name,
        namespace=cluster.namespace,
        cluster_domain=spec.kubernetesClusterDomain,
        headless_service=cluster.headless_service_name(),
        client_service=cluster.client_service_name(),
        admin_service=cluster.admin_server_service_name(),
        quorum_port=spec.port("quorum"),
        leader_port=spec.port("leader-election"),
        client_port=spec.port("client"),
        admin_port=spec.port("admin-server"),
        replicas=spec.replicas,
    )
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {
            "name": cluster.config_map_name(),
            "namespace": cluster.namespace,
            "labels": _base_labels(cluster),
        },
        "data": {
            "zoo.cfg": zoo_cfg,
            "env.sh": env_sh,
            "log4j.properties": LOG4J_PROPERTIES,
        },
    }


def make_statefulset(cluster):
    spec = cluster.spec
    pod = spec.pod
    pod_labels = {**_base_labels(cluster), **pod.labels}
    ephemeral = spec.storageType == STORAGE_EPHEMERAL or spec.persistence is None
    return render_manifest(
        "statefulset.yaml.j2",
        name=cluster.name,
        namespace=cluster.namespace,
        labels=_base_labels(cluster, component="zookeeper"),
        headless_service=cluster.headless_service_name(),
        replicas=spec.replicas,
        pod_labels=pod_labels,
        pod_annotations=pod.annotations,
        service_account=pod.serviceAccountName,
        termination_grace_period=pod.terminationGracePeriodSeconds,
        node_selector=pod.nodeSelector,
        tolerations=pod.tolerations,
        affinity=pod.affinity,
        image=spec.image.to_string(),
        pull_policy=spec.image.pullPolicy,
        ports=[{"name": p.name, "containerPort": p.containerPort} for p in spec.ports],
        env=pod.env,
        resources=pod.resources,
        config_map=cluster.config_map_name(),
        ephemeral=ephemeral,
        pvc_labels={"app": cluster.name, "uid": cluster.metadata.uid or ""},
        pvc_spec=None if ephemeral else spec.persistence.spec,
    )


def _service(cluster, name, ports, policy=None, headless=False):
    policy_type = policy.type if policy is not None else None
    annotations = dict(policy.annotations) if policy is not None else {}
    return render_manifest(
        "service.yaml.j2",
        name=name,
        namespace=cluster.namespace,
        labels=_base_labels(cluster),
        annotations=annotations,
        service_type="ClusterIP" if headless else (policy_type or "ClusterIP"),
        headless=headless,
        app=cluster.name,
        ports=ports,
    )


def make_client_service(cluster):
    port = cluster.spec.port("client")
    return _service(
        cluster,
        cluster.client_service_name(),
        [{"name": "tcp-client", "port": port, "targetPort": port}],
        policy=cluster.spec.clientService,
    )


def make_headless_service(cluster):
    spec = cluster.spec
    ports = [
        {"name": f"tcp-{name}", "port": spec.port(name), "targetPort": spec.port(name)}
        for name in ("client", "quorum", "leader-election", "metrics", "admin-server")
    ]
    return _service(
        cluster,
        cluster.headless_service_name(),
        ports,
        policy=spec.headlessService,
        headless=True,
    )


def make_admin_server_service(cluster):
    port = cluster.spec.port("admin-server")
    return _service(
        cluster,
        cluster.admin_server_service_name(),
        [{"name": "tcp-admin-server", "port": port, "targetPort": port}],
        policy=cluster.spec.adminServerService,
    )


def make_pod_disruption_budget(cluster):
    return render_manifest(
        "poddisruptionbudget.yaml.j2",
        name=cluster.name,
        namespace=cluster.namespace,
        labels=_base_labels(cluster),
        max_unavailable=cluster.spec.maxUnavailableReplicas,
        app=cluster.name,
    )


def make_service_account(cluster):
    pod = cluster.spec.pod
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {
            "name": pod.serviceAccountName,
            "namespace": cluster.namespace,
            "labels": _base_labels(cluster),
        },
        "imagePullSecrets": list(pod.imagePullSecrets),
    }


LOG4J_PROPERTIES = """zookeeper.root.logger=CONSOLE
zookeeper.console.threshold=INFO
log4j.rootLogger=${zookeeper.root.logger}
log4j.appender.CONSOLE=org.apache.log4j.ConsoleAppender
log4j.appender.CONSOLE.Threshold=${zookeeper.console.threshold}
log4j.appender.CONSOLE.layout=org.apache.log4j.PatternLayout
log4j.appender.CONSOLE.layout.ConversionPattern=%d{ISO8601} [myid:%X{myid}] - %-5p [%t:%C{1}@%L] - %m%n
"""
