"""Audit reconciler — read-side projection of the anchored activity log.

The reconciler never mutates anything. It reads the latest revision of each
activity entry (revisions are swapped atomically by the activity log, so a
reader never sees a half-confirmed entry) and orders them newest first:
submitted_at descending, ties broken by entry id ascending.

reconcile() joins the event store's completed tasks with the log by
recomputing each completion's activity hash, which exposes completions
that were never queued (missing) or whose anchoring failed. Confirmed
completions carry a block explorer link when an explorer URL is configured.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional

from taskchain.crypto.anchor import activity_hash
from taskchain.models.activity import ActivityLogEntry, AnchorStatus
from taskchain.models.task import TaskStatus, format_utc
from taskchain.persistence.activity_log import ActivityLog
from taskchain.persistence.event_store import EventStore


class ReconciliationState(str, enum.Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    FAILED = "failed"
    MISSING = "missing"


@dataclass(frozen=True)
class ReconciledCompletion:
    task_id: str
    employee_id: str
    completed_at: str
    activity_hash: str
    state: ReconciliationState
    entry_id: Optional[str] = None
    transaction_hash: Optional[str] = None
    explorer_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "employee_id": self.employee_id,
            "completed_at": self.completed_at,
            "activity_hash": self.activity_hash,
            "state": self.state.value,
            "entry_id": self.entry_id,
            "transaction_hash": self.transaction_hash,
            "explorer_url": self.explorer_url,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    organization_id: str
    completions: list[ReconciledCompletion] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        result = {s.value: 0 for s in ReconciliationState}
        for c in self.completions:
            result[c.state.value] += 1
        return result

    @property
    def gaps(self) -> list[ReconciledCompletion]:
        """Completions without a confirmed anchor that will not get one."""
        return [
            c for c in self.completions
            if c.state in (ReconciliationState.FAILED, ReconciliationState.MISSING)
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "counts": self.counts(),
            "completions": [c.to_dict() for c in self.completions],
        }


def _newest_first(entries: list[ActivityLogEntry]) -> list[ActivityLogEntry]:
    # Stable two-pass sort: id ascending, then submitted_at descending.
    ordered = sorted(entries, key=lambda e: e.entry_id)
    return sorted(ordered, key=lambda e: e.submitted_at, reverse=True)


class AuditReconciler:
    """Queryable views over the activity log."""

    def __init__(
        self,
        activity_log: ActivityLog,
        event_store: EventStore,
        explorer_url: Optional[str] = None,
    ) -> None:
        self._log = activity_log
        self._events = event_store
        self._explorer_url = explorer_url

    def get_organization_log(self, organization_id: str) -> list[ActivityLogEntry]:
        return _newest_first(self._log.entries(organization_id=organization_id))

    def get_user_log(self, employee_id: str) -> list[ActivityLogEntry]:
        return _newest_first(self._log.entries(employee_id=employee_id))

    def status_counts(self, organization_id: str) -> dict[str, int]:
        counts = {s.value: 0 for s in AnchorStatus}
        for entry in self._log.entries(organization_id=organization_id):
            counts[entry.status.value] += 1
        return counts

    def reconcile(self, organization_id: str) -> ReconciliationReport:
        """Match every completed task against its anchor entry."""
        completions: list[ReconciledCompletion] = []
        tasks = self._events.tasks_for_organization(
            organization_id, status=TaskStatus.COMPLETED,
        )
        for task in tasks:
            digest = activity_hash(task.assignee_id, task.task_id, task.completed_at)
            entry = self._log.get_by_hash(digest)
            if entry is None:
                state = ReconciliationState.MISSING
            else:
                state = ReconciliationState(entry.status.value)
            completions.append(ReconciledCompletion(
                task_id=task.task_id,
                employee_id=task.assignee_id,
                completed_at=format_utc(task.completed_at),
                activity_hash=digest,
                state=state,
                entry_id=entry.entry_id if entry else None,
                transaction_hash=entry.transaction_hash if entry else None,
                explorer_url=entry.explorer_link(self._explorer_url) if entry else None,
            ))
        return ReconciliationReport(organization_id=organization_id, completions=completions)
