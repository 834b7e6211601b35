"""taskchain service — unified facade over scoring and chain anchoring.

This is the primary interface for programmatic access. It orchestrates:
- Task status changes in the event store
- Score invalidation and on-demand recomputation
- Organization insights, rankings and assignee suggestions
- Completion anchoring (enqueue now, confirm in the background)
- Audit log views and reconciliation

Mutators return a ServiceResult instead of raising. Task completion
succeeds as soon as the event store accepts it: anchoring is best-effort
and its state is reported as information only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from taskchain.audit.reconciler import AuditReconciler, ReconciliationReport
from taskchain.config import ChainSettings
from taskchain.crypto.anchor import ChainClient, OfflineChainClient, Web3ChainClient
from taskchain.crypto.anchor_service import ChainAnchorService, PollSummary
from taskchain.models.activity import ActivityLogEntry
from taskchain.models.task import (
    Employee,
    EmployeeRole,
    TaskPriority,
    TaskRecord,
    TaskStatus,
    utc,
)
from taskchain.persistence.activity_log import ActivityLog
from taskchain.persistence.event_store import EventStore, UnknownTaskError
from taskchain.persistence.score_store import ScoreStore
from taskchain.policy.resolver import PolicyResolver
from taskchain.scoring.engine import ScoringEngine
from taskchain.scoring.insights import (
    AssigneeSuggestion,
    Insights,
    InsightsAggregator,
    RankedEmployee,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    not_found: bool = False


class TaskchainService:
    """Facade over the event store, scoring engine and anchor service.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = TaskchainService(resolver)
        service.start()          # background anchor poller

        service.add_employee("alice", "org-1", "Alice")
        service.create_task("T-1", "org-1", "alice", "admin", "Write report")
        result = service.update_task_status("T-1", TaskStatus.COMPLETED)
        # result.data["blockchain"] == {"status": "pending", ...}

        service.recalculate_scores("org-1")
        insights = service.get_insights("org-1")

    Persistence (optional):
        service = TaskchainService.from_settings(resolver, load_chain_settings())
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        event_store: Optional[EventStore] = None,
        score_store: Optional[ScoreStore] = None,
        activity_log: Optional[ActivityLog] = None,
        chain_client: Optional[ChainClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
        explorer_url: Optional[str] = None,
    ) -> None:
        self._resolver = resolver
        self._explorer_url = explorer_url
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._events = event_store or EventStore()
        self._scores = score_store or ScoreStore()
        self._activity_log = activity_log or ActivityLog()

        self._scoring = ScoringEngine(resolver, self._events, self._scores, clock=self._clock)
        self._insights = InsightsAggregator(resolver, self._events, self._scores)
        self._anchors = ChainAnchorService(
            resolver, self._activity_log, chain_client or OfflineChainClient(),
            clock=self._clock,
        )
        self._reconciler = AuditReconciler(self._activity_log, self._events, explorer_url)

    @classmethod
    def from_settings(
        cls,
        resolver: PolicyResolver,
        settings: ChainSettings,
    ) -> TaskchainService:
        """Create a service with durable stores under settings.data_dir."""
        data_dir: Path = settings.data_dir
        data_dir.mkdir(parents=True, exist_ok=True)

        client: ChainClient
        if settings.chain_enabled:
            client = Web3ChainClient(
                rpc_url=settings.rpc_url,
                private_key=settings.private_key,
                chain_id=settings.chain_id,
                gas=resolver.anchoring_policy().gas_limit,
            )
        else:
            logger.warning("No chain RPC configured; completions will stay pending")
            client = OfflineChainClient()

        return cls(
            resolver,
            event_store=EventStore(storage_path=data_dir / "event_store.json"),
            score_store=ScoreStore(storage_path=data_dir / "scores.jsonl"),
            activity_log=ActivityLog(storage_path=data_dir / "activity_log.jsonl"),
            chain_client=client,
            explorer_url=settings.explorer_url,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._anchors.start()

    def stop(self) -> None:
        self._anchors.stop()

    # ------------------------------------------------------------------
    # Event store operations
    # ------------------------------------------------------------------

    def add_employee(
        self,
        employee_id: str,
        organization_id: str,
        name: str,
        role: EmployeeRole = EmployeeRole.EMPLOYEE,
        department: Optional[str] = None,
        position: Optional[str] = None,
    ) -> ServiceResult:
        try:
            employee = Employee(
                employee_id=employee_id.strip(),
                organization_id=organization_id,
                name=name,
                role=role,
                department=department,
                position=position,
            )
            self._events.add_employee(employee)
        except (ValueError, OSError) as e:
            return ServiceResult(success=False, errors=[str(e)])
        return ServiceResult(success=True, data={"employee": employee.to_dict()})

    def create_task(
        self,
        task_id: str,
        organization_id: str,
        assignee_id: str,
        assigner_id: str,
        title: str,
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_date: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            assignee = self._events.get_employee(assignee_id)
            if assignee.organization_id != organization_id:
                return ServiceResult(
                    success=False,
                    errors=[f"Employee {assignee_id} is not in organization {organization_id}"],
                )
            task = TaskRecord(
                task_id=task_id,
                organization_id=organization_id,
                assignee_id=assignee_id,
                assigner_id=assigner_id,
                title=title,
                status=TaskStatus.ASSIGNED,
                priority=priority,
                created_at=utc(self._clock()),
                due_date=utc(due_date) if due_date else None,
            )
            self._events.add_task(task)
        except (ValueError, OSError) as e:
            return ServiceResult(success=False, errors=[str(e)])

        self._scoring.invalidate(assignee_id)
        return ServiceResult(success=True, data={"task": task.to_dict()})

    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        organization_id: Optional[str] = None,
    ) -> ServiceResult:
        """Change a task's status; completions are queued for anchoring.

        The result fails only if the event store rejects the change;
        not_found is set when the task does not exist (in the organization).
        """
        try:
            if organization_id is not None:
                task = self._events.get_task(task_id)
                if task.organization_id != organization_id:
                    raise UnknownTaskError(task_id)
            previous, updated = self._events.update_status(task_id, status, self._clock())
        except UnknownTaskError as e:
            return ServiceResult(success=False, errors=[str(e)], not_found=True)
        except (ValueError, OSError) as e:
            logger.error("Could not update task %s: %s", task_id, e)
            return ServiceResult(success=False, errors=[str(e)])

        self._scoring.invalidate(updated.assignee_id)
        data: dict[str, Any] = {"task": updated.to_dict()}

        if updated.is_completed and not previous.is_completed:
            data["blockchain"] = self._queue_anchor(updated)

        return ServiceResult(success=True, data=data)

    # ------------------------------------------------------------------
    # Scoring and insights
    # ------------------------------------------------------------------

    def get_employee_score(self, employee_id: str) -> ServiceResult:
        try:
            snapshot = self._scoring.get_score(employee_id)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])
        return ServiceResult(success=True, data={"score": snapshot.to_dict()})

    def recalculate_scores(self, organization_id: str) -> ServiceResult:
        try:
            snapshots = self._scoring.recompute_all(organization_id)
        except (ValueError, OSError) as e:
            return ServiceResult(success=False, errors=[str(e)])
        return ServiceResult(
            success=True,
            data={
                "message": f"Recalculated productivity scores for {len(snapshots)} employee(s)",
                "count": len(snapshots),
            },
        )

    def get_insights(self, organization_id: str) -> Insights:
        return self._insights.build_insights(organization_id)

    def get_rankings(self, organization_id: str) -> list[RankedEmployee]:
        return self._insights.rankings(organization_id)

    def suggest_assignees(
        self,
        organization_id: str,
        limit: Optional[int] = None,
    ) -> list[AssigneeSuggestion]:
        return self._insights.suggest_assignees(organization_id, limit)

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def get_organization_chain_log(self, organization_id: str) -> list[ActivityLogEntry]:
        return self._reconciler.get_organization_log(organization_id)

    def get_user_chain_log(self, employee_id: str) -> list[ActivityLogEntry]:
        return self._reconciler.get_user_log(employee_id)

    def describe_entry(self, entry: ActivityLogEntry) -> dict[str, Any]:
        """Entry as a dict, with an explorer link once it is confirmed."""
        data = entry.to_dict()
        data["explorer_url"] = entry.explorer_link(self._explorer_url)
        return data

    def reconcile(self, organization_id: str) -> ReconciliationReport:
        return self._reconciler.reconcile(organization_id)

    def poll_anchors(self, now: Optional[datetime] = None) -> PollSummary:
        """Run one confirmation pass in the calling thread."""
        return self._anchors.poll_once(now)

    def get_employee(self, employee_id: str) -> Optional[Employee]:
        if not self._events.has_employee(employee_id):
            return None
        return self._events.get_employee(employee_id)

    def status(self) -> dict[str, Any]:
        pending = self._activity_log.pending()
        return {
            "employees": self._events.employee_count,
            "tasks": self._events.task_count,
            "activity_entries": self._activity_log.count,
            "pending_anchors": len(pending),
            "poller_running": self._anchors.running,
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _queue_anchor(self, task: TaskRecord) -> dict[str, Any]:
        """Queue a completion for anchoring. Never raises."""
        try:
            entry = self._anchors.submit_completion(
                task_id=task.task_id,
                employee_id=task.assignee_id,
                completed_at=task.completed_at,
                organization_id=task.organization_id,
            )
        except (ValueError, OSError) as e:
            logger.error("Could not queue anchor for task %s: %s", task.task_id, e)
            return {"status": "unavailable", "error": str(e)}
        return {
            "status": entry.status.value,
            "activity_hash": entry.activity_hash,
            "entry_id": entry.entry_id,
        }
