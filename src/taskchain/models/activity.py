"""Activity log entry model — one anchored task-completion event.

An entry is created by the chain anchor service when a completion is
submitted and is advanced only by the confirmation poller:

    pending -> confirmed
    pending -> failed

Both outcomes are terminal. Entries are never deleted; failed entries are
retained for diagnosis. Each transition produces a new frozen revision so
readers always observe a whole entry, never a half-applied update.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from taskchain.models.task import format_utc, parse_utc


class AnchorStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ActivityEventType(str, enum.Enum):
    TASK_COMPLETION = "task_completion"


@dataclass(frozen=True)
class ActivityLogEntry:
    """Local record of a commitment anchored (or being anchored) on chain.

    transaction_hash is only present once the commitment is confirmed.
    broadcast_tx_hash tracks the transaction in flight while pending.
    """
    entry_id: str
    organization_id: str
    employee_id: str
    task_id: str
    event_type: ActivityEventType
    activity_hash: str
    status: AnchorStatus
    submitted_at: datetime
    retry_count: int = 0
    transaction_hash: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    block_number: Optional[int] = None
    broadcast_tx_hash: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != AnchorStatus.PENDING

    def explorer_link(self, explorer_url: Optional[str]) -> Optional[str]:
        """Block explorer link for the confirming transaction, if any."""
        if not explorer_url or self.transaction_hash is None:
            return None
        return explorer_url + self.transaction_hash

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.entry_id,
            "organization_id": self.organization_id,
            "employee_id": self.employee_id,
            "task_id": self.task_id,
            "event_type": self.event_type.value,
            "activity_hash": self.activity_hash,
            "status": self.status.value,
            "transaction_hash": self.transaction_hash,
            "submitted_at": format_utc(self.submitted_at),
            "confirmed_at": format_utc(self.confirmed_at) if self.confirmed_at else None,
            "retry_count": self.retry_count,
            "block_number": self.block_number,
            "broadcast_tx_hash": self.broadcast_tx_hash,
            "last_error": self.last_error,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ActivityLogEntry:
        return ActivityLogEntry(
            entry_id=data["id"],
            organization_id=data["organization_id"],
            employee_id=data["employee_id"],
            task_id=data["task_id"],
            event_type=ActivityEventType(data["event_type"]),
            activity_hash=data["activity_hash"],
            status=AnchorStatus(data["status"]),
            submitted_at=parse_utc(data["submitted_at"]),
            retry_count=data.get("retry_count", 0),
            transaction_hash=data.get("transaction_hash"),
            confirmed_at=parse_utc(data.get("confirmed_at")),
            block_number=data.get("block_number"),
            broadcast_tx_hash=data.get("broadcast_tx_hash"),
            last_error=data.get("last_error"),
        )
