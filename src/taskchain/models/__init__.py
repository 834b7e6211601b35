"""Core data models for taskchain."""

from taskchain.models.activity import ActivityEventType, ActivityLogEntry, AnchorStatus
from taskchain.models.score import ScoreSnapshot, Trend
from taskchain.models.task import (
    Employee,
    EmployeeRole,
    TaskPriority,
    TaskRecord,
    TaskStatus,
)

__all__ = [
    "ActivityEventType",
    "ActivityLogEntry",
    "AnchorStatus",
    "Employee",
    "EmployeeRole",
    "ScoreSnapshot",
    "TaskPriority",
    "TaskRecord",
    "TaskStatus",
    "Trend",
]
