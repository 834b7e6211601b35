"""Activity log — the durable audit trail of anchored completion events.

Entries are never deleted. Each state change is written as a new revision
line in a JSONL file (one JSON object per line), so the file is itself
append-only and the full lifecycle of every entry can be replayed.

Guarantees:
1. At most one entry per activity_hash (check-then-insert is atomic).
2. Revisions are validated by the anchor state machine, so status only
   moves forward (pending -> confirmed | failed).
3. A revision replaces the stored entry in one step under the lock;
   readers see either the old or the new revision, never a mix.
"""

from __future__ import annotations

import hashlib
import json
import threading
from pathlib import Path
from typing import Any, Optional

from taskchain.crypto.state_machine import AnchorStateMachine
from taskchain.models.activity import ActivityLogEntry, AnchorStatus


def _record_hash(entry_data: dict[str, Any]) -> str:
    canonical = json.dumps(entry_data, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


class ActivityLog:
    """Thread-safe store of activity log entries with JSONL persistence."""

    def __init__(
        self,
        storage_path: Optional[Path] = None,
        state_machine: Optional[AnchorStateMachine] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, ActivityLogEntry] = {}
        self._by_hash: dict[str, str] = {}
        self._storage_path = storage_path
        self._state_machine = state_machine or AnchorStateMachine()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def insert_if_absent(self, entry: ActivityLogEntry) -> tuple[ActivityLogEntry, bool]:
        """Insert a new entry unless one with the same activity_hash exists.

        Returns (stored_entry, created). When an entry already exists it is
        returned unchanged and created is False.
        """
        if entry.status != AnchorStatus.PENDING:
            raise ValueError(f"New entries must be pending, got {entry.status.value}")

        with self._lock:
            existing_id = self._by_hash.get(entry.activity_hash)
            if existing_id is not None:
                return self._entries[existing_id], False
            if entry.entry_id in self._entries:
                raise ValueError(f"Duplicate entry ID: {entry.entry_id}")

            if self._storage_path:
                self._append_to_file(entry)
            self._entries[entry.entry_id] = entry
            self._by_hash[entry.activity_hash] = entry.entry_id
            return entry, True

    def revise(self, revised: ActivityLogEntry) -> ActivityLogEntry:
        """Replace an entry with a new revision.

        Raises KeyError for unknown entries and TransitionError for illegal
        revisions. The durable append happens before the in-memory swap, so
        a failed write leaves the visible state unchanged.
        """
        with self._lock:
            current = self._entries[revised.entry_id]
            self._state_machine.check(current, revised)
            if self._storage_path:
                self._append_to_file(revised)
            self._entries[revised.entry_id] = revised
            return revised

    def get(self, entry_id: str) -> Optional[ActivityLogEntry]:
        with self._lock:
            return self._entries.get(entry_id)

    def get_by_hash(self, activity_hash: str) -> Optional[ActivityLogEntry]:
        with self._lock:
            entry_id = self._by_hash.get(activity_hash)
            return self._entries[entry_id] if entry_id is not None else None

    def entries(
        self,
        organization_id: Optional[str] = None,
        employee_id: Optional[str] = None,
        status: Optional[AnchorStatus] = None,
    ) -> list[ActivityLogEntry]:
        """Snapshot of current entries, optionally filtered."""
        with self._lock:
            snapshot = list(self._entries.values())
        return [
            e for e in snapshot
            if (organization_id is None or e.organization_id == organization_id)
            and (employee_id is None or e.employee_id == employee_id)
            and (status is None or e.status == status)
        ]

    def pending(self) -> list[ActivityLogEntry]:
        return self.entries(status=AnchorStatus.PENDING)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _append_to_file(self, entry: ActivityLogEntry) -> None:
        """Append a single revision to the JSONL file."""
        data = entry.to_dict()
        record = {"entry": data, "record_hash": _record_hash(data)}
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, sort_keys=True, ensure_ascii=False) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Replay revisions from a JSONL file with integrity verification.

        Fail-closed: rejects tampered lines (hash mismatch), a second entry
        for an existing activity_hash, and revisions that move backwards.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                data = record["entry"]

                expected_hash = _record_hash(data)
                if record["record_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): entry {data['id']} "
                        f"stored hash {record['record_hash']} != computed {expected_hash}"
                    )

                entry = ActivityLogEntry.from_dict(data)
                current = self._entries.get(entry.entry_id)
                if current is None:
                    if entry.status != AnchorStatus.PENDING:
                        raise ValueError(
                            f"First revision must be pending (line {line_num}): {entry.entry_id}"
                        )
                    if entry.activity_hash in self._by_hash:
                        raise ValueError(
                            f"Duplicate activity hash on recovery (line {line_num}): "
                            f"{entry.activity_hash}"
                        )
                    self._by_hash[entry.activity_hash] = entry.entry_id
                else:
                    errors = self._state_machine.transition_errors(current, entry)
                    if errors:
                        raise ValueError(
                            f"Invalid revision on recovery (line {line_num}): "
                            + "; ".join(errors)
                        )
                self._entries[entry.entry_id] = entry
