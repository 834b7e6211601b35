"""Productivity scoring engine — computes scores, trends and recommendations.

Score model:
  completion = completed * 100 // total          (0 if no tasks)
  on_time    = on_time * 100 // completed        (0 if nothing completed)
  score      = floor(w_C * completion + w_O * on_time + 0.5), clamped to [0, 100]

Invariants enforced:
- w_C + w_O = 1.0 (validated by the policy resolver).
- Rates are floored integers; score rounds half up.
- An employee with no tasks gets the neutral snapshot (zeros, stable).
- Trend is stable for the first snapshot; afterwards it depends only on
  (baseline score, current score), where the baseline is the last
  different score.
- Snapshots for one employee are published in computed_at order.
- recompute_all is single-flight per organization.
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from taskchain.models.score import ScoreSnapshot, Trend
from taskchain.models.task import TaskPriority, TaskRecord
from taskchain.persistence.event_store import EventStore
from taskchain.persistence.score_store import ScoreStore
from taskchain.policy.resolver import PolicyResolver
from taskchain.scoring.rules import ScoreMetrics, recommend
from taskchain.scoring.singleflight import SingleFlight

logger = logging.getLogger(__name__)


class ScoringEngine:
    """Computes and publishes score snapshots."""

    def __init__(
        self,
        resolver: PolicyResolver,
        event_store: EventStore,
        score_store: ScoreStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._resolver = resolver
        self._events = event_store
        self._scores = score_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._flight: SingleFlight[list[ScoreSnapshot]] = SingleFlight()
        self._employee_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.recompute_passes = 0

    # ------------------------------------------------------------------
    # Pure computation
    # ------------------------------------------------------------------

    def compute_rates(self, tasks: list[TaskRecord]) -> tuple[int, int]:
        """Return (task_completion_rate, on_time_rate) as floored percentages."""
        total = len(tasks)
        completed = [t for t in tasks if t.is_completed]
        if total == 0:
            return 0, 0
        completion = len(completed) * 100 // total
        if not completed:
            return completion, 0
        on_time = sum(1 for t in completed if t.is_on_time())
        return completion, on_time * 100 // len(completed)

    def combine(self, completion_rate: int, on_time_rate: int) -> int:
        """Weighted score, rounded half up and clamped to [0, 100]."""
        w_c, w_o = self._resolver.score_weights()
        raw = w_c * completion_rate + w_o * on_time_rate
        return max(0, min(100, math.floor(raw + 0.5)))

    def classify_trend(self, previous_score: Optional[int], score: int) -> Trend:
        """Trend from the previous score; no previous score means stable."""
        if previous_score is None:
            return Trend.STABLE
        threshold = self._resolver.trend_threshold()
        delta = score - previous_score
        if delta >= threshold:
            return Trend.IMPROVING
        if delta <= -threshold:
            return Trend.DECLINING
        return Trend.STABLE

    @staticmethod
    def trend_baseline(previous: Optional[ScoreSnapshot], score: int) -> Optional[int]:
        """Score the trend is measured against.

        An unchanged score keeps the previous snapshot's baseline, so a
        recompute with no task changes reproduces the same trend.
        """
        if previous is None:
            return None
        if previous.score == score:
            return previous.baseline_score
        return previous.score

    def build_snapshot(
        self,
        employee_id: str,
        organization_id: str,
        tasks: list[TaskRecord],
        previous: Optional[ScoreSnapshot],
        now: datetime,
    ) -> ScoreSnapshot:
        """Compute a snapshot from task history and the previous snapshot."""
        completion, on_time = self.compute_rates(tasks)
        score = self.combine(completion, on_time)
        baseline = self.trend_baseline(previous, score)
        trend = self.classify_trend(baseline, score)

        completed = [t for t in tasks if t.is_completed]
        metrics = ScoreMetrics(
            total_tasks=len(tasks),
            completed_tasks=len(completed),
            on_time_tasks=sum(1 for t in completed if t.is_on_time()),
            overdue_tasks=sum(1 for t in tasks if t.is_overdue(now)),
            open_high_priority=sum(
                1 for t in tasks
                if not t.is_completed and t.priority == TaskPriority.HIGH
            ),
            task_completion_rate=completion,
            on_time_rate=on_time,
            score=score,
            trend=trend,
        )
        return ScoreSnapshot(
            employee_id=employee_id,
            organization_id=organization_id,
            score=score,
            task_completion_rate=completion,
            on_time_rate=on_time,
            trend=trend,
            computed_at=now,
            recommendations=recommend(metrics, self._resolver.max_recommendations()),
            total_tasks=metrics.total_tasks,
            completed_tasks=metrics.completed_tasks,
            on_time_tasks=metrics.on_time_tasks,
            overdue_tasks=metrics.overdue_tasks,
            baseline_score=baseline,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def compute_score(self, employee_id: str) -> ScoreSnapshot:
        """Recompute and publish the snapshot for one employee.

        Raises UnknownEmployeeError for ids not in the event store.
        """
        employee = self._events.get_employee(employee_id)
        with self._employee_lock(employee_id):
            generation = self._scores.generation(employee_id)
            previous = self._scores.current(employee_id)
            snapshot = self.build_snapshot(
                employee_id=employee_id,
                organization_id=employee.organization_id,
                tasks=self._events.tasks_for_employee(employee_id),
                previous=previous,
                now=self._clock(),
            )
            self._scores.publish(snapshot, generation)
        logger.debug(
            "Scored %s: %d (%s)", employee_id, snapshot.score, snapshot.trend.value,
        )
        return snapshot

    def get_score(self, employee_id: str) -> ScoreSnapshot:
        """Current snapshot, computed on demand if absent or invalidated."""
        self._events.get_employee(employee_id)
        if self._scores.is_fresh(employee_id):
            return self._scores.current(employee_id)
        return self.compute_score(employee_id)

    def invalidate(self, employee_id: str) -> None:
        """Mark an employee's snapshot stale after a task change."""
        self._scores.invalidate(employee_id)

    def recompute_all(self, organization_id: str) -> list[ScoreSnapshot]:
        """Recompute every active employee of an organization.

        Concurrent calls for the same organization share one pass.
        """
        snapshots, shared = self._flight.do(
            organization_id, lambda: self._recompute_organization(organization_id),
        )
        if shared:
            logger.info("Joined in-flight recompute for organization %s", organization_id)
        return list(snapshots)

    def _recompute_organization(self, organization_id: str) -> list[ScoreSnapshot]:
        self.recompute_passes += 1
        employees = self._events.employees(organization_id)
        logger.info(
            "Recomputing scores for %d employee(s) in organization %s",
            len(employees), organization_id,
        )
        return [self.compute_score(e.employee_id) for e in employees]

    def _employee_lock(self, employee_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._employee_locks.get(employee_id)
            if lock is None:
                lock = threading.Lock()
                self._employee_locks[employee_id] = lock
            return lock
