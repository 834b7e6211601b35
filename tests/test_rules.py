"""Tests for recommendation rules — proves table order and limits."""

from taskchain.models.score import Trend
from taskchain.scoring.rules import RECOMMENDATION_RULES, ScoreMetrics, recommend


def _metrics(**overrides) -> ScoreMetrics:
    fields = dict(
        total_tasks=10,
        completed_tasks=6,
        on_time_tasks=4,
        overdue_tasks=0,
        open_high_priority=0,
        task_completion_rate=60,
        on_time_rate=66,
        score=63,
        trend=Trend.STABLE,
    )
    fields.update(overrides)
    return ScoreMetrics(**fields)


class TestRuleTable:
    def test_rule_names_unique(self) -> None:
        names = [r.name for r in RECOMMENDATION_RULES]
        assert len(names) == len(set(names))

    def test_no_tasks_rule_first(self) -> None:
        assert RECOMMENDATION_RULES[0].name == "no_tasks"


class TestRecommend:
    def test_healthy_metrics_produce_nothing(self) -> None:
        assert recommend(_metrics(), limit=3) == ()

    def test_order_follows_table(self) -> None:
        recs = recommend(
            _metrics(
                overdue_tasks=2,
                task_completion_rate=20,
                completed_tasks=1,
                on_time_rate=0,
                score=10,
            ),
            limit=3,
        )
        assert recs == (
            "Follow up on 2 overdue task(s)",
            "Reduce concurrent task load",
            "Review deadline estimation",
        )

    def test_limit_truncates(self) -> None:
        recs = recommend(
            _metrics(overdue_tasks=2, task_completion_rate=20, trend=Trend.DECLINING),
            limit=1,
        )
        assert recs == ("Follow up on 2 overdue task(s)",)

    def test_zero_limit(self) -> None:
        assert recommend(_metrics(overdue_tasks=1), limit=0) == ()

    def test_high_priority_backlog(self) -> None:
        recs = recommend(_metrics(open_high_priority=3), limit=3)
        assert recs == ("Rebalance 3 open high-priority tasks",)

    def test_late_delivery_needs_completions(self) -> None:
        recs = recommend(
            _metrics(completed_tasks=0, on_time_rate=0, task_completion_rate=50, score=25),
            limit=3,
        )
        assert "Review deadline estimation" not in recs
