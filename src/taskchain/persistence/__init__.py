"""Persistence — event store, score store and the append-only activity log."""

from taskchain.persistence.activity_log import ActivityLog
from taskchain.persistence.event_store import EventStore, UnknownEmployeeError, UnknownTaskError
from taskchain.persistence.score_store import ScoreStore

__all__ = [
    "ActivityLog",
    "EventStore",
    "ScoreStore",
    "UnknownEmployeeError",
    "UnknownTaskError",
]
