"""Chain anchor service — asynchronous commitment of task completions.

Task completion never waits for the chain. submit_completion() only records
a pending ActivityLogEntry (idempotently, keyed by activity hash) and wakes
the background poller. The poller then drives each pending entry:

    broadcast commitment -> wait for receipt -> confirmed
                 \\ error, timeout, revert: retry with exponential backoff
                  \\ retries exhausted: failed (terminal, kept for diagnosis)

Invariants enforced:
- One entry per activity hash, however often a completion is submitted.
- Only the poller revises entries; revisions go through the anchor state
  machine, so status never moves backwards.
- Each confirmation attempt is bounded by confirmation_timeout_seconds;
  exceeding it costs one retry and is never raised to a caller.
- Failed entries are not retried automatically; the activity hash is
  derived from immutable completion data, so a re-submission would need
  tooling outside this service.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from taskchain.crypto.anchor import ChainClient, ChainUnavailableError, activity_hash
from taskchain.crypto.state_machine import TransitionError
from taskchain.models.activity import ActivityEventType, ActivityLogEntry, AnchorStatus
from taskchain.models.task import utc
from taskchain.persistence.activity_log import ActivityLog
from taskchain.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollSummary:
    """Outcome counts of one poller pass."""
    attempted: int = 0
    broadcast: int = 0
    confirmed: int = 0
    retried: int = 0
    failed: int = 0


def _new_entry_id() -> str:
    return f"act_{uuid.uuid4().hex[:12]}"


class ChainAnchorService:
    """Enqueues completion commitments and confirms them in the background.

    Usage:
        service = ChainAnchorService(resolver, activity_log, client)
        service.start()                      # background poller thread
        entry = service.submit_completion("T-1", "alice", completed_at, "org-1")
        # entry.status == AnchorStatus.PENDING; the poller takes it from here
        service.stop()
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        activity_log: ActivityLog,
        client: ChainClient,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Callable[[], str] = _new_entry_id,
    ) -> None:
        self._policy = resolver.anchoring_policy()
        self._log = activity_log
        self._client = client
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory

        self._next_attempt: dict[str, datetime] = {}
        self._poll_lock = threading.Lock()
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Submission (request path, no network I/O)
    # ------------------------------------------------------------------

    def submit_completion(
        self,
        task_id: str,
        employee_id: str,
        completed_at: datetime,
        organization_id: str,
    ) -> ActivityLogEntry:
        """Record a completion for anchoring and return its entry.

        Returns the existing entry if this completion was already submitted.
        """
        digest = activity_hash(employee_id, task_id, completed_at)
        entry = ActivityLogEntry(
            entry_id=self._id_factory(),
            organization_id=organization_id,
            employee_id=employee_id,
            task_id=task_id,
            event_type=ActivityEventType.TASK_COMPLETION,
            activity_hash=digest,
            status=AnchorStatus.PENDING,
            submitted_at=utc(self._clock()),
        )
        stored, created = self._log.insert_if_absent(entry)
        if created:
            logger.info("Queued anchor %s for task %s (%s)", stored.entry_id, task_id, digest)
            self._wake.set()
        else:
            logger.debug("Completion already queued as %s", stored.entry_id)
        return stored

    # ------------------------------------------------------------------
    # Confirmation process
    # ------------------------------------------------------------------

    def poll_once(self, now: Optional[datetime] = None) -> PollSummary:
        """Advance every pending entry whose backoff has elapsed."""
        with self._poll_lock:
            now = utc(now) if now is not None else utc(self._clock())
            counts = {"attempted": 0, "broadcast": 0, "confirmed": 0, "retried": 0, "failed": 0}

            due = [e for e in self._log.pending() if self._is_due(e.entry_id, now)]
            for entry in sorted(due, key=lambda e: (e.submitted_at, e.entry_id)):
                counts["attempted"] += 1
                outcome = self._attempt(entry, now)
                counts[outcome] += 1

            for entry_id in [k for k in self._next_attempt if self._is_terminal(k)]:
                del self._next_attempt[entry_id]

            return PollSummary(**counts)

    def next_attempt_at(self, entry_id: str) -> Optional[datetime]:
        """When the poller will next try this entry (None = immediately)."""
        return self._next_attempt.get(entry_id)

    def start(self) -> None:
        """Start the background poller thread (idempotent)."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="taskchain-anchor-poller", daemon=True,
        )
        self._thread.start()
        logger.info(
            "Anchor poller started (interval %.1fs)", self._policy.poll_interval_seconds,
        )

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Anchor poller stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                summary = self.poll_once()
                if summary.attempted:
                    logger.debug("Anchor poll: %s", summary)
            except Exception:  # noqa: BLE001
                # The poller must outlive any single bad pass.
                logger.exception("Anchor poll pass failed")
            self._wake.wait(self._policy.poll_interval_seconds)
            self._wake.clear()

    def _attempt(self, entry: ActivityLogEntry, now: datetime) -> str:
        """One attempt for one entry. Returns the outcome counter name."""
        if entry.broadcast_tx_hash is None:
            try:
                tx_hash = self._client.submit(entry.activity_hash)
            except ChainUnavailableError as e:
                return self._record_failure(entry, now, str(e))
            try:
                self._log.revise(replace(entry, broadcast_tx_hash=tx_hash, last_error=None))
            except (KeyError, TransitionError, OSError):
                # The transaction is on the wire; the next pass will broadcast again.
                logger.error(
                    "Broadcast anchor %s in tx %s but could not record it", entry.entry_id, tx_hash,
                )
                raise
            self._next_attempt[entry.entry_id] = now + timedelta(
                seconds=self._policy.poll_interval_seconds,
            )
            logger.info("Broadcast anchor %s in tx %s", entry.entry_id, tx_hash)
            return "broadcast"

        try:
            receipt = self._client.get_receipt(
                entry.broadcast_tx_hash, self._policy.confirmation_timeout_seconds,
            )
        except ChainUnavailableError as e:
            return self._record_failure(entry, now, str(e))

        if receipt is None:
            return self._record_failure(
                entry, now,
                f"Not confirmed within {self._policy.confirmation_timeout_seconds:g}s",
            )
        if not receipt.succeeded:
            return self._record_failure(
                entry, now, f"Transaction {receipt.tx_hash} reverted", rebroadcast=True,
            )

        self._log.revise(replace(
            entry,
            status=AnchorStatus.CONFIRMED,
            transaction_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            confirmed_at=now,
            broadcast_tx_hash=None,
            last_error=None,
        ))
        logger.info(
            "Confirmed anchor %s in block %d (tx %s)",
            entry.entry_id, receipt.block_number, receipt.tx_hash,
        )
        return "confirmed"

    def _record_failure(
        self,
        entry: ActivityLogEntry,
        now: datetime,
        error: str,
        rebroadcast: bool = False,
    ) -> str:
        retries = entry.retry_count + 1
        broadcast = None if rebroadcast else entry.broadcast_tx_hash

        if retries >= self._policy.max_retries:
            self._log.revise(replace(
                entry,
                status=AnchorStatus.FAILED,
                retry_count=retries,
                broadcast_tx_hash=broadcast,
                last_error=error,
            ))
            logger.error(
                "Anchor %s failed after %d attempt(s): %s", entry.entry_id, retries, error,
            )
            return "failed"

        self._log.revise(replace(
            entry, retry_count=retries, broadcast_tx_hash=broadcast, last_error=error,
        ))
        delay = self._policy.backoff_seconds(entry.retry_count)
        self._next_attempt[entry.entry_id] = now + timedelta(seconds=delay)
        logger.warning(
            "Anchor %s attempt %d failed (%s); retrying in %.1fs",
            entry.entry_id, retries, error, delay,
        )
        return "retried"

    def _is_due(self, entry_id: str, now: datetime) -> bool:
        scheduled = self._next_attempt.get(entry_id)
        return scheduled is None or scheduled <= now

    def _is_terminal(self, entry_id: str) -> bool:
        entry = self._log.get(entry_id)
        return entry is None or entry.is_terminal
