"""Employee and task record models.

These are the records owned by the event store. The scoring engine and the
anchor service only read them, except for the completion timestamp, which
is written together with the status change.

Invariants:
- completed_at is set if and only if status is COMPLETED.
- Overdue is derived (due date passed, not completed), never stored.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Optional


class TaskStatus(str, enum.Enum):
    """Lifecycle status of a task."""
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EmployeeRole(str, enum.Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


def utc(value: datetime) -> datetime:
    """Normalise a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_utc(value: datetime) -> str:
    """Canonical second-precision UTC timestamp string."""
    return utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_utc(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


@dataclass(frozen=True)
class Employee:
    """An employee of an organization."""
    employee_id: str
    organization_id: str
    name: str
    role: EmployeeRole = EmployeeRole.EMPLOYEE
    department: Optional[str] = None
    position: Optional[str] = None
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.employee_id,
            "organization_id": self.organization_id,
            "name": self.name,
            "role": self.role.value,
            "department": self.department,
            "position": self.position,
            "is_active": self.is_active,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Employee:
        return Employee(
            employee_id=data["id"],
            organization_id=data["organization_id"],
            name=data["name"],
            role=EmployeeRole(data.get("role", "employee")),
            department=data.get("department"),
            position=data.get("position"),
            is_active=data.get("is_active", True),
        )


@dataclass(frozen=True)
class TaskRecord:
    """A single task assigned to an employee.

    Records are immutable; a status change produces a new record via
    with_status(), which keeps completed_at consistent with the status.
    """
    task_id: str
    organization_id: str
    assignee_id: str
    assigner_id: str
    title: str
    status: TaskStatus
    priority: TaskPriority
    created_at: datetime
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        completed = self.status == TaskStatus.COMPLETED
        if completed != (self.completed_at is not None):
            raise ValueError(
                f"{self.task_id}: completed_at must be set iff status is completed"
            )

    def with_status(self, status: TaskStatus, now: Optional[datetime] = None) -> TaskRecord:
        """Return a copy in the given status.

        Completing stamps completed_at (keeping an existing stamp if the task
        was already completed). Any other status clears it.
        """
        if status == TaskStatus.COMPLETED:
            if self.status == TaskStatus.COMPLETED:
                return self
            stamp = utc(now) if now is not None else datetime.now(timezone.utc)
            return replace(self, status=status, completed_at=stamp)
        return replace(self, status=status, completed_at=None)

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def is_on_time(self) -> bool:
        """A completed task is on time if it had no due date or met it."""
        if self.completed_at is None:
            return False
        if self.due_date is None:
            return True
        return utc(self.completed_at) <= utc(self.due_date)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.due_date is None or self.is_completed:
            return False
        now = utc(now) if now is not None else datetime.now(timezone.utc)
        return utc(self.due_date) < now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.task_id,
            "organization_id": self.organization_id,
            "assigned_to": self.assignee_id,
            "assigned_by": self.assigner_id,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
            "created_at": format_utc(self.created_at),
            "due_date": format_utc(self.due_date) if self.due_date else None,
            "completed_at": format_utc(self.completed_at) if self.completed_at else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> TaskRecord:
        return TaskRecord(
            task_id=data["id"],
            organization_id=data["organization_id"],
            assignee_id=data["assigned_to"],
            assigner_id=data["assigned_by"],
            title=data.get("title", ""),
            status=TaskStatus(data["status"]),
            priority=TaskPriority(data.get("priority", "medium")),
            created_at=parse_utc(data["created_at"]),
            due_date=parse_utc(data.get("due_date")),
            completed_at=parse_utc(data.get("completed_at")),
        )
