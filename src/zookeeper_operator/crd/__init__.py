"""Base types shared by custom resource models."""

from .base import (
    Condition,
    ConditionStatus,
    ConditionType,
    CRDSpec,
    CRDStatus,
    ObjectMeta,
)

__all__ = [
    "CRDSpec",
    "CRDStatus",
    "Condition",
    "ConditionStatus",
    "ConditionType",
    "ObjectMeta",
]
