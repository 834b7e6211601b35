"""Insights aggregator — organization-wide views over current score snapshots.

Pure read-side computation. Nothing here triggers a recompute; callers that
need fresh numbers run ScoringEngine.recompute_all first.

Ordering rules:
- Rankings and top performers: score descending, employee id ascending.
- Needs attention: score ascending, employee id ascending.

No deduplication is applied between top performers and needs-attention.
Low scorers cannot rank among the top performers unless the organization
is that small, but a declining top scorer appears in both lists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from taskchain.models.score import ScoreSnapshot, Trend
from taskchain.models.task import Employee, TaskStatus
from taskchain.persistence.event_store import EventStore
from taskchain.persistence.score_store import ScoreStore
from taskchain.policy.resolver import PolicyResolver


@dataclass(frozen=True)
class RankedEmployee:
    """A scored employee as shown in rankings and insights."""
    employee_id: str
    name: str
    department: str | None
    position: str | None
    score: int
    task_completion_rate: int
    on_time_rate: int
    trend: Trend
    recommendations: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.employee_id,
            "name": self.name,
            "department": self.department,
            "position": self.position,
            "productivity_score": self.score,
            "task_completion_rate": self.task_completion_rate,
            "on_time_rate": self.on_time_rate,
            "performance_trend": self.trend.value,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class Insights:
    top_performers: list[RankedEmployee] = field(default_factory=list)
    needs_attention: list[RankedEmployee] = field(default_factory=list)
    trend_distribution: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topPerformers": [e.to_dict() for e in self.top_performers],
            "needsAttention": [e.to_dict() for e in self.needs_attention],
            "trendDistribution": dict(self.trend_distribution),
        }


@dataclass(frozen=True)
class AssigneeSuggestion:
    """A candidate assignee for a new task."""
    employee_id: str
    name: str
    department: str | None
    score: int
    open_tasks: int
    recommendation_score: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.employee_id,
            "name": self.name,
            "department": self.department,
            "productivity_score": self.score,
            "open_tasks": self.open_tasks,
            "recommendationScore": self.recommendation_score,
        }


class InsightsAggregator:
    """Builds rankings, insights and assignee suggestions.

    Usage:
        aggregator = InsightsAggregator(resolver, event_store, score_store)
        insights = aggregator.build_insights("org-1")
        ranking = aggregator.rankings("org-1")
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        event_store: EventStore,
        score_store: ScoreStore,
    ) -> None:
        self._resolver = resolver
        self._events = event_store
        self._scores = score_store

    def rankings(self, organization_id: str) -> list[RankedEmployee]:
        """All scored active employees, best first."""
        ranked = self._scored_employees(organization_id)
        return sorted(ranked, key=lambda r: (-r.score, r.employee_id))

    def build_insights(self, organization_id: str) -> Insights:
        ranked = self._scored_employees(organization_id)

        top_n = self._resolver.top_performer_count()
        top = sorted(ranked, key=lambda r: (-r.score, r.employee_id))[:top_n]

        threshold = self._resolver.attention_threshold()
        attention = sorted(
            (r for r in ranked if r.score < threshold or r.trend == Trend.DECLINING),
            key=lambda r: (r.score, r.employee_id),
        )

        distribution = {t.value: 0 for t in Trend}
        for r in ranked:
            distribution[r.trend.value] += 1

        return Insights(
            top_performers=top,
            needs_attention=attention,
            trend_distribution=distribution,
        )

    def suggest_assignees(
        self,
        organization_id: str,
        limit: int | None = None,
    ) -> list[AssigneeSuggestion]:
        """Rank active employees as assignees for a new task.

        recommendation = w_S * score + w_A * availability, where availability
        falls from 100 to 0 as open tasks approach open_task_capacity.
        Employees without a snapshot count with score 0.
        """
        w_score, w_avail = self._resolver.suggestion_weights()
        capacity = self._resolver.open_task_capacity()
        limit = self._resolver.suggestion_limit() if limit is None else limit

        suggestions: list[AssigneeSuggestion] = []
        for employee in self._events.employees(organization_id):
            snapshot = self._scores.current(employee.employee_id)
            score = snapshot.score if snapshot else 0
            open_tasks = sum(
                1 for t in self._events.tasks_for_employee(employee.employee_id)
                if t.status != TaskStatus.COMPLETED
            )
            availability = max(0, 100 - (min(open_tasks, capacity) * 100 // capacity))
            recommendation = round(w_score * score + w_avail * availability)
            suggestions.append(AssigneeSuggestion(
                employee_id=employee.employee_id,
                name=employee.name,
                department=employee.department,
                score=score,
                open_tasks=open_tasks,
                recommendation_score=max(0, min(100, recommendation)),
            ))

        suggestions.sort(key=lambda s: (-s.recommendation_score, s.open_tasks, s.employee_id))
        return suggestions[:limit]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _scored_employees(self, organization_id: str) -> list[RankedEmployee]:
        employees = {e.employee_id: e for e in self._events.employees(organization_id)}
        return [
            self._ranked(employees[s.employee_id], s)
            for s in self._scores.snapshots(organization_id)
            if s.employee_id in employees
        ]

    @staticmethod
    def _ranked(employee: Employee, snapshot: ScoreSnapshot) -> RankedEmployee:
        return RankedEmployee(
            employee_id=employee.employee_id,
            name=employee.name,
            department=employee.department,
            position=employee.position,
            score=snapshot.score,
            task_completion_rate=snapshot.task_completion_rate,
            on_time_rate=snapshot.on_time_rate,
            trend=snapshot.trend,
            recommendations=snapshot.recommendations,
        )
