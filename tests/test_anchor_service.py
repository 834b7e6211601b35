"""Tests for the chain anchor service — proves enqueue, retry and confirm
behaviour without a live chain."""

import json
import logging
import threading
import time
import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from taskchain.crypto.anchor import (
    ChainReceipt,
    ChainUnavailableError,
    OfflineChainClient,
    activity_hash,
)
from taskchain.audit.reconciler import AuditReconciler
from taskchain.crypto.anchor_service import ChainAnchorService
from taskchain.models.activity import AnchorStatus
from taskchain.persistence.activity_log import ActivityLog
from taskchain.persistence.event_store import EventStore
from taskchain.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeChainClient:
    """In-memory chain. `online` toggles reachability; `mode` controls receipts."""

    def __init__(self) -> None:
        self.online = True
        self.mode = "mined"  # mined | slow | reverted
        self.submitted: list[str] = []
        self.block = 1000

    def submit(self, digest: str) -> str:
        if not self.online:
            raise ChainUnavailableError("RPC endpoint unreachable")
        self.submitted.append(digest)
        return f"0x{len(self.submitted):064x}"

    def get_receipt(self, tx_hash: str, timeout: float) -> Optional[ChainReceipt]:
        if not self.online:
            raise ChainUnavailableError("RPC endpoint unreachable")
        if self.mode == "slow":
            return None
        self.block += 1
        return ChainReceipt(tx_hash=tx_hash, block_number=self.block,
                            succeeded=self.mode != "reverted")


def _params() -> dict:
    return json.loads((CONFIG_DIR / "productivity_params.json").read_text(encoding="utf-8"))


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def client() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def log() -> ActivityLog:
    return ActivityLog()


@pytest.fixture
def service(resolver, log, client) -> ChainAnchorService:
    return ChainAnchorService(resolver, log, client, clock=lambda: T0)


def _submit(service: ChainAnchorService, task_id: str = "T-1"):
    return service.submit_completion(
        task_id=task_id,
        employee_id="alice",
        completed_at=T0 - timedelta(minutes=5),
        organization_id="org-1",
    )


class TestSubmitCompletion:
    def test_creates_pending_entry(self, service, client) -> None:
        entry = _submit(service)
        assert entry.status == AnchorStatus.PENDING
        assert entry.entry_id.startswith("act_")
        assert entry.activity_hash == activity_hash("alice", "T-1", T0 - timedelta(minutes=5))
        assert entry.transaction_hash is None
        assert client.submitted == []

    def test_resubmission_is_idempotent(self, service, log) -> None:
        first = _submit(service)
        second = _submit(service)
        assert second.entry_id == first.entry_id
        assert log.count == 1

    def test_works_without_chain(self, resolver) -> None:
        service = ChainAnchorService(resolver, ActivityLog(), OfflineChainClient(), clock=lambda: T0)
        assert _submit(service).status == AnchorStatus.PENDING

    def test_concurrent_resubmission_creates_one_entry(self, service, log) -> None:
        workers = 8
        barrier = threading.Barrier(workers)
        entries = []

        def submit() -> None:
            barrier.wait()
            entries.append(_submit(service))

        threads = [threading.Thread(target=submit) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(entries) == workers
        assert len({e.entry_id for e in entries}) == 1
        assert log.count == 1


class TestConfirmation:
    def test_broadcast_then_confirm(self, service, client, log) -> None:
        entry = _submit(service)
        summary = service.poll_once(T0)
        assert summary.broadcast == 1
        assert log.get(entry.entry_id).broadcast_tx_hash == f"0x{1:064x}"

        summary = service.poll_once(T0 + timedelta(seconds=5))
        assert summary.confirmed == 1
        confirmed = log.get(entry.entry_id)
        assert confirmed.status == AnchorStatus.CONFIRMED
        assert confirmed.transaction_hash == f"0x{1:064x}"
        assert confirmed.block_number == 1001
        assert confirmed.confirmed_at == T0 + timedelta(seconds=5)
        assert client.submitted == [entry.activity_hash]

    def test_not_due_before_poll_interval(self, service) -> None:
        _submit(service)
        service.poll_once(T0)
        assert service.poll_once(T0 + timedelta(seconds=1)).attempted == 0

    def test_network_outage_then_recovery(self, service, client, log) -> None:
        client.online = False
        entry = _submit(service)

        summary = service.poll_once(T0)
        assert summary.retried == 1
        pending = log.get(entry.entry_id)
        assert pending.status == AnchorStatus.PENDING
        assert pending.retry_count == 1
        assert "unreachable" in pending.last_error
        assert service.next_attempt_at(entry.entry_id) == T0 + timedelta(seconds=2)

        # Backoff not yet elapsed
        assert service.poll_once(T0 + timedelta(seconds=1)).attempted == 0

        client.online = True
        assert service.poll_once(T0 + timedelta(seconds=3)).broadcast == 1
        assert service.poll_once(T0 + timedelta(seconds=10)).confirmed == 1

        confirmed = log.get(entry.entry_id)
        assert confirmed.status == AnchorStatus.CONFIRMED
        assert confirmed.retry_count == 1
        assert log.count == 1
        assert len(client.submitted) == 1

    def test_backoff_grows(self, service, client) -> None:
        client.online = False
        entry = _submit(service)
        service.poll_once(T0)
        service.poll_once(T0 + timedelta(seconds=2))
        assert service.next_attempt_at(entry.entry_id) == T0 + timedelta(seconds=6)

    def test_slow_confirmation_costs_a_retry(self, service, client, log) -> None:
        entry = _submit(service)
        service.poll_once(T0)
        client.mode = "slow"
        summary = service.poll_once(T0 + timedelta(seconds=5))
        assert summary.retried == 1
        slow = log.get(entry.entry_id)
        assert slow.last_error == "Not confirmed within 30s"
        assert slow.broadcast_tx_hash is not None

        client.mode = "mined"
        service.poll_once(T0 + timedelta(minutes=1))
        assert log.get(entry.entry_id).status == AnchorStatus.CONFIRMED
        assert len(client.submitted) == 1

    def test_reverted_transaction_is_rebroadcast(self, service, client, log) -> None:
        entry = _submit(service)
        service.poll_once(T0)
        client.mode = "reverted"
        service.poll_once(T0 + timedelta(seconds=5))
        assert log.get(entry.entry_id).broadcast_tx_hash is None

        client.mode = "mined"
        service.poll_once(T0 + timedelta(minutes=1))
        service.poll_once(T0 + timedelta(minutes=2))
        confirmed = log.get(entry.entry_id)
        assert confirmed.status == AnchorStatus.CONFIRMED
        assert confirmed.transaction_hash == f"0x{2:064x}"
        assert len(client.submitted) == 2


class TestRetryExhaustion:
    def test_fails_after_max_retries(self, log, client) -> None:
        params = _params()
        params["anchoring"]["max_retries"] = 3
        service = ChainAnchorService(
            PolicyResolver.from_dict(params), log, client, clock=lambda: T0,
        )
        client.online = False
        entry = _submit(service)

        outcomes = []
        for hour in range(4):
            summary = service.poll_once(T0 + timedelta(hours=hour))
            outcomes.append((summary.retried, summary.failed))

        assert outcomes == [(1, 0), (1, 0), (0, 1), (0, 0)]
        failed = log.get(entry.entry_id)
        assert failed.status == AnchorStatus.FAILED
        assert failed.retry_count == 3
        assert failed.transaction_hash is None
        assert service.next_attempt_at(entry.entry_id) is None

    def test_failed_entry_not_resubmitted(self, log, client) -> None:
        params = _params()
        params["anchoring"]["max_retries"] = 1
        service = ChainAnchorService(
            PolicyResolver.from_dict(params), log, client, clock=lambda: T0,
        )
        client.online = False
        first = _submit(service)
        service.poll_once(T0)
        again = _submit(service)
        assert again.entry_id == first.entry_id
        assert again.status == AnchorStatus.FAILED


class TestBackgroundPoller:
    def test_poller_confirms_in_background(self, log, client) -> None:
        params = _params()
        params["anchoring"]["poll_interval_seconds"] = 0.01
        service = ChainAnchorService(PolicyResolver.from_dict(params), log, client)
        service.start()
        try:
            assert service.running
            entry = _submit(service)
            deadline = time.monotonic() + 5
            while log.get(entry.entry_id).status != AnchorStatus.CONFIRMED:
                assert time.monotonic() < deadline, "anchor was not confirmed"
                time.sleep(0.01)
        finally:
            service.stop()
        assert not service.running

    def test_start_is_idempotent(self, service) -> None:
        service.start()
        thread = service._thread
        service.start()
        assert service._thread is thread
        service.stop()

    def test_readers_never_see_status_regress(self, log, client) -> None:
        params = _params()
        params["anchoring"]["poll_interval_seconds"] = 0.01
        service = ChainAnchorService(PolicyResolver.from_dict(params), log, client)
        reconciler = AuditReconciler(log, EventStore())
        for n in range(5):
            _submit(service, task_id=f"T-{n}")

        stop = threading.Event()
        problems: list[str] = []

        def read() -> None:
            seen_confirmed: set[str] = set()
            while not stop.is_set():
                for entry in reconciler.get_organization_log("org-1"):
                    if entry.status == AnchorStatus.CONFIRMED:
                        if entry.transaction_hash is None:
                            problems.append(f"{entry.entry_id} confirmed without tx")
                        seen_confirmed.add(entry.entry_id)
                    elif entry.entry_id in seen_confirmed:
                        problems.append(f"{entry.entry_id} went back to {entry.status.value}")

        readers = [threading.Thread(target=read) for _ in range(4)]
        for t in readers:
            t.start()
        service.start()
        try:
            deadline = time.monotonic() + 5
            while log.pending():
                assert time.monotonic() < deadline, "anchors were not confirmed"
                time.sleep(0.01)
        finally:
            service.stop()
            stop.set()
            for t in readers:
                t.join()

        assert problems == []
        assert reconciler.status_counts("org-1")["confirmed"] == 5


class TestRecordingFailure:
    def test_unrecorded_broadcast_is_logged(self, resolver, client, caplog) -> None:
        class UnwritableLog(ActivityLog):
            def revise(self, revised):
                raise OSError("disk full")

        log = UnwritableLog()
        service = ChainAnchorService(resolver, log, client, clock=lambda: T0)
        _submit(service)

        with caplog.at_level(logging.ERROR, logger="taskchain.crypto.anchor_service"):
            with pytest.raises(OSError, match="disk full"):
                service.poll_once(T0)

        tx_hash = f"0x{1:064x}"
        assert any(tx_hash in r.getMessage() for r in caplog.records)
