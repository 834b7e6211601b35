"""Tests for the insights aggregator — rankings, insights and assignee suggestions."""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from taskchain.models.score import ScoreSnapshot, Trend
from taskchain.models.task import Employee, TaskPriority, TaskRecord, TaskStatus
from taskchain.persistence.event_store import EventStore
from taskchain.persistence.score_store import ScoreStore
from taskchain.policy.resolver import PolicyResolver
from taskchain.scoring.insights import InsightsAggregator


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

# employee id -> (score, trend)
SCORES = {
    "ann": (90, Trend.IMPROVING),
    "ben": (80, Trend.STABLE),
    "cat": (80, Trend.STABLE),
    "dan": (80, Trend.DECLINING),
    "eve": (30, Trend.STABLE),
    "fay": (50, Trend.DECLINING),
}


def _snapshot(employee_id: str, score: int, trend: Trend, org: str = "org-1") -> ScoreSnapshot:
    return ScoreSnapshot(
        employee_id=employee_id,
        organization_id=org,
        score=score,
        task_completion_rate=score,
        on_time_rate=score,
        trend=trend,
        computed_at=T0,
    )


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def events() -> EventStore:
    store = EventStore()
    for employee_id in SCORES:
        store.add_employee(Employee(employee_id, "org-1", employee_id.title()))
    store.add_employee(Employee("zed", "org-2", "Zed"))
    return store


@pytest.fixture
def scores() -> ScoreStore:
    store = ScoreStore()
    for employee_id, (score, trend) in SCORES.items():
        store.publish(_snapshot(employee_id, score, trend))
    store.publish(_snapshot("zed", 99, Trend.STABLE, org="org-2"))
    return store


@pytest.fixture
def aggregator(resolver, events, scores) -> InsightsAggregator:
    return InsightsAggregator(resolver, events, scores)


class TestRankings:
    def test_score_desc_then_id(self, aggregator: InsightsAggregator) -> None:
        ids = [r.employee_id for r in aggregator.rankings("org-1")]
        assert ids == ["ann", "ben", "cat", "dan", "fay", "eve"]

    def test_scoped_to_organization(self, aggregator: InsightsAggregator) -> None:
        assert [r.employee_id for r in aggregator.rankings("org-2")] == ["zed"]

    def test_row_shape(self, aggregator: InsightsAggregator) -> None:
        row = aggregator.rankings("org-1")[0].to_dict()
        assert row["productivity_score"] == 90
        assert row["performance_trend"] == "improving"


class TestBuildInsights:
    def test_top_performers_capped_with_tie_break(self, aggregator: InsightsAggregator) -> None:
        insights = aggregator.build_insights("org-1")
        assert [r.employee_id for r in insights.top_performers] == ["ann", "ben", "cat"]

    def test_needs_attention(self, aggregator: InsightsAggregator) -> None:
        insights = aggregator.build_insights("org-1")
        assert [r.employee_id for r in insights.needs_attention] == ["eve", "fay", "dan"]

    def test_trend_distribution_has_all_trends(self, aggregator: InsightsAggregator) -> None:
        insights = aggregator.build_insights("org-1")
        assert insights.trend_distribution == {"improving": 1, "declining": 2, "stable": 3}

    def test_empty_organization(self, aggregator: InsightsAggregator) -> None:
        data = aggregator.build_insights("org-empty").to_dict()
        assert data["topPerformers"] == []
        assert data["needsAttention"] == []
        assert data["trendDistribution"] == {"improving": 0, "declining": 0, "stable": 0}

    def test_inactive_employees_excluded(self, resolver, scores) -> None:
        events = EventStore()
        events.add_employee(Employee("ann", "org-1", "Ann", is_active=False))
        events.add_employee(Employee("ben", "org-1", "Ben"))
        insights = InsightsAggregator(resolver, events, scores).build_insights("org-1")
        assert [r.employee_id for r in insights.top_performers] == ["ben"]


class TestSuggestAssignees:
    def _open_tasks(self, events: EventStore, employee_id: str, count: int) -> None:
        for n in range(count):
            events.add_task(TaskRecord(
                task_id=f"{employee_id}-{n}",
                organization_id="org-1",
                assignee_id=employee_id,
                assigner_id="boss",
                title="Open work",
                status=TaskStatus.IN_PROGRESS,
                priority=TaskPriority.MEDIUM,
                created_at=T0 + timedelta(minutes=n),
            ))

    def test_workload_lowers_recommendation(
        self, aggregator: InsightsAggregator, events: EventStore,
    ) -> None:
        self._open_tasks(events, "ann", 5)
        suggestions = aggregator.suggest_assignees("org-1")
        assert len(suggestions) == 3
        top = suggestions[0]
        assert top.employee_id == "ben"
        assert top.recommendation_score == 86
        ann = next(
            s for s in aggregator.suggest_assignees("org-1", limit=10)
            if s.employee_id == "ann"
        )
        assert ann.open_tasks == 5
        assert ann.recommendation_score == 63

    def test_unscored_employee_counts_as_zero(self, resolver, events) -> None:
        suggestions = InsightsAggregator(resolver, events, ScoreStore()).suggest_assignees(
            "org-1", limit=10,
        )
        assert all(s.score == 0 for s in suggestions)
        assert all(s.recommendation_score == 30 for s in suggestions)
        assert [s.employee_id for s in suggestions] == sorted(SCORES)
