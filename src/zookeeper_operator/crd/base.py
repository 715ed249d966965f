"""Base classes for custom resource specifications."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator


def now_rfc3339():
    """Current UTC time formatted the way Kubernetes stamps conditions."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value):
    """ Parse a condition timestamp, returning None when it is unparsable.
    """
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class ObjectMeta(BaseModel):
    """Standard Kubernetes metadata for custom resources."""

    name: str
    namespace: Optional[str] = None
    uid: Optional[str] = None
    resourceVersion: Optional[str] = None
    generation: Optional[int] = None
    deletionTimestamp: Optional[str] = None
    finalizers: List[str] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)

    class Config:
        extra = "allow"


class ConditionType(str, Enum):
    READY = "PodsReady"
    UPGRADING = "Upgrading"
    ERROR = "Error"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(BaseModel):
    """Custom Kubernetes condition."""

    type: ConditionType
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    lastUpdateTime: str = ""
    lastTransitionTime: str = ""


class CRDStatus(BaseModel):
    """ Base class for status objects carrying typed conditions.

    Conditions are held as a mapping keyed by type and serialized back to
    the list Kubernetes expects, in order of first occurrence.
    """

    conditions: Dict[ConditionType, Condition] = Field(default_factory=dict)

    class Config:
        extra = "allow"
        validate_assignment = True

    @field_validator("conditions", mode="before")
    @classmethod
    def _conditions_from_list(cls, value):
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        conditions = {}
        known = {t.value for t in ConditionType}
        for item in value:
            data = item if isinstance(item, dict) else item.model_dump()
            if data.get("type") not in known or data["type"] in conditions:
                continue
            conditions[data["type"]] = data
        return conditions

    @field_serializer("conditions")
    def _conditions_to_list(self, conditions):
        return [c.model_dump(mode="json") for c in conditions.values()]

    def get_condition(self, condition_type) -> Optional[Condition]:
        return self.conditions.get(condition_type)

    def set_condition(self, condition_type, status, reason="", message=""):
        """ Append or replace the condition of the given type.

        Timestamps are only refreshed when something observable changes.
        """
        timestamp = now_rfc3339()
        existing = self.conditions.get(condition_type)
        if existing is None:
            self.conditions[condition_type] = Condition(
                type=condition_type,
                status=status,
                reason=reason,
                message=message,
                lastUpdateTime=timestamp,
                lastTransitionTime=timestamp,
            )
            return
        if existing.status != status:
            existing.status = status
            existing.lastTransitionTime = timestamp
            existing.lastUpdateTime = timestamp
        if existing.reason != reason or existing.message != message:
            existing.reason = reason
            existing.message = message
            existing.lastUpdateTime = timestamp

    def is_condition_true(self, condition_type):
        condition = self.conditions.get(condition_type)
        return condition is not None and condition.status == ConditionStatus.TRUE


class CRDSpec(BaseModel):
    """Base class for all CRD spec objects."""

    class Config:
        extra = "allow"
        validate_assignment = True
