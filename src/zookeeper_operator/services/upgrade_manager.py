""" Rolling upgrade state machine for the ensemble statefulset.

The state lives entirely in the cluster status: the Upgrading condition
(its message holds the last observed count of updated replicas), the Error
condition and the current/target version strings.

    NotUpgrading -> InProgress -> Completed -> NotUpgrading
                              -> Failed -> NotUpgrading
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum

from zookeeper_operator.crd.base import ConditionStatus, ConditionType, parse_rfc3339
from zookeeper_operator.models.zookeeper import (
    UPDATING_ZOOKEEPER_REASON,
    UPGRADE_FAILED_REASON,
)
from zookeeper_operator.services.client import persist_cluster_status

logger = logging.getLogger(__name__)

PROGRESS_DEADLINE_EXCEEDED = "progress deadline exceeded"


class UpgradeState(str, Enum):
    NOT_UPGRADING = "NotUpgrading"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"


def _revisions(sts):
    sts_status = sts.get("status") or {}
    return sts_status.get("currentRevision"), sts_status.get("updateRevision")


def _utcnow():
    return datetime.now(timezone.utc)


class UpgradeStateMachine:
    """ Drives the Upgrading and Error conditions from statefulset observations.

    Args:
        store: Object store adapter used to persist status changes
        timeout: Seconds without progress before an upgrade is declared failed
        clock: Callable returning the current aware datetime
    """

    def __init__(self, store, timeout=600.0, clock=None):
        self.store = store
        self.timeout = timedelta(seconds=timeout)
        self.clock = clock or _utcnow

    def step(self, cluster, sts):
        """ Advance the upgrade of ``cluster`` given its stored statefulset.

        Returns:
            UpgradeState: the state the cluster is in after this step
        """
        status = cluster.status
        condition = status.get_condition(ConditionType.UPGRADING)
        if condition is None:
            status.set_upgrading_false()
            return UpgradeState.NOT_UPGRADING

        current_revision, update_revision = _revisions(sts)
        state = UpgradeState.NOT_UPGRADING

        if condition.status == ConditionStatus.FALSE:
            if (
                status.is_ready()
                and current_revision != update_revision
                and cluster.spec.image.tag != status.currentVersion
            ):
                logger.info(
                    f"Upgrade of {cluster.namespace}/{cluster.name} triggered: "
                    f"{status.currentVersion} -> {cluster.spec.image.tag}"
                )
                status.targetVersion = cluster.spec.image.tag
                status.set_pods_ready(False)
                status.set_upgrading_true()

        if status.is_upgrading():
            if not status.targetVersion:
                logger.info("upgrading to an unknown version: cancelling upgrade process")
                self.clear_upgrade_status(cluster)
                return UpgradeState.NOT_UPGRADING

            if current_revision == update_revision:
                status.currentVersion = status.targetVersion
                logger.info(f"Upgrade of {cluster.namespace}/{cluster.name} completed")
                self.clear_upgrade_status(cluster)
                return UpgradeState.COMPLETED

            updated_replicas = (sts.get("status") or {}).get("updatedReplicas") or 0
            logger.info(f"Upgrade in progress, {updated_replicas} replicas updated")
            condition = status.get_condition(ConditionType.UPGRADING)
            if str(updated_replicas) != condition.message:
                status.update_progress(UPDATING_ZOOKEEPER_REASON, updated_replicas)
                state = UpgradeState.IN_PROGRESS
            elif self.sync_timed_out(cluster, updated_replicas):
                logger.warning(
                    f"Upgrade of {cluster.namespace}/{cluster.name} made no progress "
                    f"for {self.timeout}, marking it failed"
                )
                status.set_error_true(UPGRADE_FAILED_REASON, PROGRESS_DEADLINE_EXCEEDED)
                persist_cluster_status(self.store, cluster)
                return UpgradeState.FAILED
            else:
                return UpgradeState.IN_PROGRESS

        persist_cluster_status(self.store, cluster)
        return state

    def sync_timed_out(self, cluster, updated_replicas):
        """ True when the rollout has been stuck at ``updated_replicas`` too long.
        """
        condition = cluster.status.get_condition(ConditionType.UPGRADING)
        if condition is None or not cluster.status.is_upgrading():
            return False
        if condition.reason != UPDATING_ZOOKEEPER_REASON or condition.message != str(updated_replicas):
            return False
        last_update = parse_rfc3339(condition.lastUpdateTime)
        if last_update is None:
            return True
        return self.clock() > last_update + self.timeout

    def recover(self, cluster, sts):
        """ Leave the failed state once every member runs the target revision.

        Returns:
            UpgradeState: NOT_UPGRADING when recovered, FAILED otherwise
        """
        status = cluster.status
        sts_status = sts.get("status") or {}
        current_revision, update_revision = _revisions(sts)
        if (
            sts_status.get("replicas") == sts_status.get("readyReplicas")
            and current_revision == update_revision
        ):
            logger.info(
                f"Failed upgrade completed, from {status.currentVersion} to {status.targetVersion}"
            )
            status.currentVersion = status.targetVersion
            status.set_error_false()
            self.clear_upgrade_status(cluster)
            return UpgradeState.NOT_UPGRADING

        logger.info(
            "Unable to recover failed upgrade, make sure all nodes are running the target version"
        )
        return UpgradeState.FAILED

    def clear_upgrade_status(self, cluster):
        cluster.status.set_upgrading_false()
        cluster.status.targetVersion = ""
        persist_cluster_status(self.store, cluster)
