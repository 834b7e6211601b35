"""Productivity score snapshot model.

A snapshot is the scoring engine's output for one employee at one moment.
Snapshots are superseded on recompute, never mutated; the previous
snapshot is kept only long enough to derive the trend of the next one.

baseline_score is the score the trend was measured against: the score of
the last snapshot whose score differed from this one (None for an
employee's first score). Recomputing with unchanged task history therefore
reproduces the same trend.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from taskchain.models.task import format_utc, parse_utc


class Trend(str, enum.Enum):
    """Score movement relative to the previous snapshot."""
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


@dataclass(frozen=True)
class ScoreSnapshot:
    """Scored productivity state for a single employee.

    score, task_completion_rate and on_time_rate are integers in [0, 100].
    """
    employee_id: str
    organization_id: str
    score: int
    task_completion_rate: int
    on_time_rate: int
    trend: Trend
    computed_at: datetime
    recommendations: tuple[str, ...] = field(default_factory=tuple)
    total_tasks: int = 0
    completed_tasks: int = 0
    on_time_tasks: int = 0
    overdue_tasks: int = 0
    baseline_score: Optional[int] = None

    def same_result(self, other: ScoreSnapshot) -> bool:
        """True if both snapshots agree on everything except computed_at."""
        return self.canonical_fields() == other.canonical_fields()

    def canonical_fields(self) -> tuple[Any, ...]:
        return (
            self.employee_id,
            self.organization_id,
            self.score,
            self.task_completion_rate,
            self.on_time_rate,
            self.trend.value,
            self.recommendations,
            self.total_tasks,
            self.completed_tasks,
            self.on_time_tasks,
            self.overdue_tasks,
            self.baseline_score,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "organization_id": self.organization_id,
            "score": self.score,
            "task_completion_rate": self.task_completion_rate,
            "on_time_rate": self.on_time_rate,
            "trend": self.trend.value,
            "recommendations": list(self.recommendations),
            "computed_at": format_utc(self.computed_at),
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "on_time_tasks": self.on_time_tasks,
            "overdue_tasks": self.overdue_tasks,
            "baseline_score": self.baseline_score,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ScoreSnapshot:
        return ScoreSnapshot(
            employee_id=data["employee_id"],
            organization_id=data["organization_id"],
            score=int(data["score"]),
            task_completion_rate=int(data["task_completion_rate"]),
            on_time_rate=int(data["on_time_rate"]),
            trend=Trend(data["trend"]),
            computed_at=parse_utc(data["computed_at"]),
            recommendations=tuple(data.get("recommendations", ())),
            total_tasks=data.get("total_tasks", 0),
            completed_tasks=data.get("completed_tasks", 0),
            on_time_tasks=data.get("on_time_tasks", 0),
            overdue_tasks=data.get("overdue_tasks", 0),
            baseline_score=data.get("baseline_score"),
        )
