"""Anchor state machine — enforces the activity entry transition rules.

Transitions are fail-closed: any transition not explicitly allowed is
rejected. Confirmed and failed are terminal, so an entry can never be
observed moving backwards to pending.
"""

from __future__ import annotations

from taskchain.models.activity import ActivityLogEntry, AnchorStatus


# Legal transitions: (from_status, to_status)
_TRANSITIONS: set[tuple[AnchorStatus, AnchorStatus]] = {
    (AnchorStatus.PENDING, AnchorStatus.CONFIRMED),
    (AnchorStatus.PENDING, AnchorStatus.FAILED),
    # Retry bookkeeping (retry_count, broadcast hash) stays in pending
    (AnchorStatus.PENDING, AnchorStatus.PENDING),
}


class TransitionError(Exception):
    """Raised when an anchor status transition is not allowed."""


class AnchorStateMachine:
    """Validates revisions of an activity log entry."""

    def transition_errors(
        self,
        current: ActivityLogEntry,
        revised: ActivityLogEntry,
    ) -> list[str]:
        """Validate a revision. Empty list means the revision is legal."""
        errors: list[str] = []

        if (current.status, revised.status) not in _TRANSITIONS:
            errors.append(
                f"Illegal transition: {current.status.value} → {revised.status.value}"
            )
            return errors

        if revised.entry_id != current.entry_id:
            errors.append(f"{current.entry_id}: entry id cannot change")
        if revised.activity_hash != current.activity_hash:
            errors.append(f"{current.entry_id}: activity_hash is immutable")
        if revised.retry_count < current.retry_count:
            errors.append(f"{current.entry_id}: retry_count cannot decrease")

        if revised.status == AnchorStatus.CONFIRMED:
            if not revised.transaction_hash:
                errors.append(f"{current.entry_id}: confirmed entry needs transaction_hash")
            if revised.confirmed_at is None:
                errors.append(f"{current.entry_id}: confirmed entry needs confirmed_at")
        elif revised.transaction_hash is not None:
            errors.append(
                f"{current.entry_id}: transaction_hash is only set on confirmation"
            )

        return errors

    def check(self, current: ActivityLogEntry, revised: ActivityLogEntry) -> None:
        """Raise TransitionError if the revision is illegal."""
        errors = self.transition_errors(current, revised)
        if errors:
            raise TransitionError("; ".join(errors))
