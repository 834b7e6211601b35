"""Recommendation rule table.

Rules are evaluated top to bottom against an employee's metrics; the first
N matches (N = max_recommendations) become the snapshot's recommendations.
The table is the single source of recommendation order, so the output for
a given set of metrics is always reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from taskchain.models.score import Trend


@dataclass(frozen=True)
class ScoreMetrics:
    """Inputs available to recommendation rules."""
    total_tasks: int
    completed_tasks: int
    on_time_tasks: int
    overdue_tasks: int
    open_high_priority: int
    task_completion_rate: int
    on_time_rate: int
    score: int
    trend: Trend


@dataclass(frozen=True)
class RecommendationRule:
    name: str
    applies: Callable[[ScoreMetrics], bool]
    message: str

    def render(self, metrics: ScoreMetrics) -> str:
        return self.message.format(
            overdue=metrics.overdue_tasks,
            open_high_priority=metrics.open_high_priority,
        )


RECOMMENDATION_RULES: tuple[RecommendationRule, ...] = (
    RecommendationRule(
        name="no_tasks",
        applies=lambda m: m.total_tasks == 0,
        message="No tasks assigned yet. Assign work to start tracking productivity",
    ),
    RecommendationRule(
        name="overdue_tasks",
        applies=lambda m: m.overdue_tasks > 0,
        message="Follow up on {overdue} overdue task(s)",
    ),
    RecommendationRule(
        name="low_completion",
        applies=lambda m: m.total_tasks > 0 and m.task_completion_rate < 50,
        message="Reduce concurrent task load",
    ),
    RecommendationRule(
        name="late_delivery",
        applies=lambda m: m.completed_tasks > 0 and m.on_time_rate < 60,
        message="Review deadline estimation",
    ),
    RecommendationRule(
        name="declining_trend",
        applies=lambda m: m.trend == Trend.DECLINING,
        message="Schedule a one-on-one check-in: performance is declining",
    ),
    RecommendationRule(
        name="high_priority_backlog",
        applies=lambda m: m.open_high_priority >= 3,
        message="Rebalance {open_high_priority} open high-priority tasks",
    ),
    RecommendationRule(
        name="top_performer",
        applies=lambda m: m.score >= 80,
        message="Consider for stretch assignments or mentoring roles",
    ),
)


def recommend(
    metrics: ScoreMetrics,
    limit: int,
    rules: tuple[RecommendationRule, ...] = RECOMMENDATION_RULES,
) -> tuple[str, ...]:
    """Evaluate the rule table in order and keep the first `limit` matches."""
    matched: list[str] = []
    for rule in rules:
        if len(matched) >= limit:
            break
        if rule.applies(metrics):
            matched.append(rule.render(metrics))
    return tuple(matched)
