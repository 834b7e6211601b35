"""Score store — the latest productivity snapshot per employee.

Trend is derived from the current snapshot's baseline_score, so only the
latest snapshot is kept in memory. With a storage path, every published
snapshot is also appended to a JSONL history file and the latest per
employee is restored on load. Restored snapshots count as stale: the task
history may have changed while they were on disk.

Each invalidation bumps a per-employee generation. A publisher records the
generation before reading tasks; if it has moved by the time the snapshot
is published, the snapshot is stored but the employee stays stale.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Optional

from taskchain.models.score import ScoreSnapshot


class ScoreStore:
    """Thread-safe holder of published score snapshots."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._lock = threading.RLock()
        self._current: dict[str, ScoreSnapshot] = {}
        self._stale: set[str] = set()
        self._generation: dict[str, int] = {}
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def publish(self, snapshot: ScoreSnapshot, generation: Optional[int] = None) -> None:
        """Publish a new snapshot, superseding the current one.

        Snapshots for one employee must arrive in computed_at order. When
        generation is given and an invalidation happened since it was read,
        the employee is left stale.
        """
        employee_id = snapshot.employee_id
        with self._lock:
            current = self._current.get(employee_id)
            if current is not None and snapshot.computed_at < current.computed_at:
                raise ValueError(
                    f"{employee_id}: snapshot computed at "
                    f"{snapshot.computed_at.isoformat()} predates current "
                    f"{current.computed_at.isoformat()}"
                )
            if self._storage_path:
                self._append_to_file(snapshot)
            self._current[employee_id] = snapshot
            if generation is None or generation == self._generation.get(employee_id, 0):
                self._stale.discard(employee_id)

    def current(self, employee_id: str) -> Optional[ScoreSnapshot]:
        with self._lock:
            return self._current.get(employee_id)

    def generation(self, employee_id: str) -> int:
        """Number of invalidations seen for an employee."""
        with self._lock:
            return self._generation.get(employee_id, 0)

    def invalidate(self, employee_id: str) -> None:
        with self._lock:
            self._stale.add(employee_id)
            self._generation[employee_id] = self._generation.get(employee_id, 0) + 1

    def is_fresh(self, employee_id: str) -> bool:
        """True if a snapshot exists and has not been invalidated."""
        with self._lock:
            return employee_id in self._current and employee_id not in self._stale

    def snapshots(self, organization_id: str) -> list[ScoreSnapshot]:
        """Current snapshots for an organization, ordered by employee id."""
        with self._lock:
            result = [
                s for s in self._current.values()
                if s.organization_id == organization_id
            ]
        return sorted(result, key=lambda s: s.employee_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _append_to_file(self, snapshot: ScoreSnapshot) -> None:
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(snapshot.to_dict(), sort_keys=True) + "\n")

    def _load_from_file(self, path: Path) -> None:
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                snapshot = ScoreSnapshot.from_dict(json.loads(line))
                self._current[snapshot.employee_id] = snapshot
                self._stale.add(snapshot.employee_id)
