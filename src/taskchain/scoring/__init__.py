"""Productivity scoring — engine, recommendation rules and insights."""

from taskchain.scoring.engine import ScoringEngine
from taskchain.scoring.insights import Insights, InsightsAggregator, RankedEmployee
from taskchain.scoring.rules import RECOMMENDATION_RULES, RecommendationRule, ScoreMetrics

__all__ = [
    "Insights",
    "InsightsAggregator",
    "RECOMMENDATION_RULES",
    "RankedEmployee",
    "RecommendationRule",
    "ScoreMetrics",
    "ScoringEngine",
]
