"""Event store — employees and tasks for every organization.

The event store stands in for the application's task database. The core
reads from it and writes status changes (with their completion stamps)
back to it. Optional persistence is a single JSON document rewritten on
each mutation; the in-memory state only changes once that write succeeds.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from taskchain.models.task import Employee, TaskRecord, TaskStatus


class UnknownEmployeeError(ValueError):
    """Raised when an employee id is not in the store."""

    def __init__(self, employee_id: str) -> None:
        super().__init__(f"Employee not found: {employee_id}")
        self.employee_id = employee_id


class UnknownTaskError(ValueError):
    """Raised when a task id is not in the store."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class EventStore:
    """In-memory employee/task store with optional JSON persistence."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._lock = threading.RLock()
        self._employees: dict[str, Employee] = {}
        self._tasks: dict[str, TaskRecord] = {}
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    # ------------------------------------------------------------------
    # Employees
    # ------------------------------------------------------------------

    def add_employee(self, employee: Employee) -> None:
        """Register an employee. Raises ValueError on duplicate id."""
        if not employee.employee_id.strip():
            raise ValueError("Employee id must not be blank")
        with self._lock:
            if employee.employee_id in self._employees:
                raise ValueError(f"Duplicate employee ID: {employee.employee_id}")
            employees = dict(self._employees)
            employees[employee.employee_id] = employee
            self._commit(employees, self._tasks)

    def get_employee(self, employee_id: str) -> Employee:
        with self._lock:
            employee = self._employees.get(employee_id)
        if employee is None:
            raise UnknownEmployeeError(employee_id)
        return employee

    def has_employee(self, employee_id: str) -> bool:
        with self._lock:
            return employee_id in self._employees

    def employees(
        self,
        organization_id: str,
        active_only: bool = True,
    ) -> list[Employee]:
        """Employees of an organization, ordered by id."""
        with self._lock:
            result = [
                e for e in self._employees.values()
                if e.organization_id == organization_id
                and (e.is_active or not active_only)
            ]
        return sorted(result, key=lambda e: e.employee_id)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def add_task(self, task: TaskRecord) -> None:
        with self._lock:
            if task.task_id in self._tasks:
                raise ValueError(f"Duplicate task ID: {task.task_id}")
            if task.assignee_id not in self._employees:
                raise UnknownEmployeeError(task.assignee_id)
            tasks = dict(self._tasks)
            tasks[task.task_id] = task
            self._commit(self._employees, tasks)

    def get_task(self, task_id: str) -> TaskRecord:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise UnknownTaskError(task_id)
        return task

    def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        now: Optional[datetime] = None,
    ) -> tuple[TaskRecord, TaskRecord]:
        """Apply a status change. Returns (previous, updated)."""
        with self._lock:
            previous = self.get_task(task_id)
            updated = previous.with_status(status, now)
            tasks = dict(self._tasks)
            tasks[task_id] = updated
            self._commit(self._employees, tasks)
        return previous, updated

    def tasks_for_employee(self, employee_id: str) -> list[TaskRecord]:
        with self._lock:
            return [t for t in self._tasks.values() if t.assignee_id == employee_id]

    def tasks_for_organization(
        self,
        organization_id: str,
        status: Optional[TaskStatus] = None,
    ) -> list[TaskRecord]:
        with self._lock:
            result = [
                t for t in self._tasks.values()
                if t.organization_id == organization_id
                and (status is None or t.status == status)
            ]
        return sorted(result, key=lambda t: t.task_id)

    @property
    def employee_count(self) -> int:
        with self._lock:
            return len(self._employees)

    @property
    def task_count(self) -> int:
        with self._lock:
            return len(self._tasks)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _commit(
        self,
        employees: dict[str, Employee],
        tasks: dict[str, TaskRecord],
    ) -> None:
        """Write the new state, then swap it in. A failed write changes nothing."""
        if self._storage_path is not None:
            document = {
                "employees": [e.to_dict() for e in employees.values()],
                "tasks": [t.to_dict() for t in tasks.values()],
            }
            tmp = self._storage_path.with_suffix(".tmp")
            tmp.write_text(json.dumps(document, sort_keys=True, indent=2), encoding="utf-8")
            tmp.replace(self._storage_path)
        self._employees = employees
        self._tasks = tasks

    def _load_from_file(self, path: Path) -> None:
        document = json.loads(path.read_text(encoding="utf-8"))
        for data in document.get("employees", []):
            employee = Employee.from_dict(data)
            self._employees[employee.employee_id] = employee
        for data in document.get("tasks", []):
            task = TaskRecord.from_dict(data)
            self._tasks[task.task_id] = task
