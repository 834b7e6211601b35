"""Tests for single-flight execution."""

import threading
import time
import pytest

from taskchain.scoring.singleflight import SingleFlight


def _wait_for_waiters(flight: SingleFlight, key, count: int) -> None:
    deadline = time.monotonic() + 5
    while flight.waiters(key) < count and time.monotonic() < deadline:
        time.sleep(0.01)


class TestSingleFlight:
    def test_sequential_calls_run_each_time(self) -> None:
        flight: SingleFlight[int] = SingleFlight()
        calls = []

        def fn() -> int:
            calls.append(1)
            return len(calls)

        assert flight.do("k", fn) == (1, False)
        assert flight.do("k", fn) == (2, False)
        assert not flight.in_flight("k")

    def test_concurrent_callers_share_result(self) -> None:
        flight: SingleFlight[str] = SingleFlight()
        started = threading.Event()
        release = threading.Event()
        calls = []
        results = []

        def slow() -> str:
            calls.append(1)
            started.set()
            release.wait(5)
            return "done"

        def run() -> None:
            results.append(flight.do("org-1", slow))

        threads = [threading.Thread(target=run) for _ in range(3)]
        threads[0].start()
        assert started.wait(5)
        for t in threads[1:]:
            t.start()
        _wait_for_waiters(flight, "org-1", 2)
        assert flight.waiters("org-1") == 2

        release.set()
        for t in threads:
            t.join(5)

        assert len(calls) == 1
        assert sorted(shared for _, shared in results) == [False, True, True]
        assert all(value == "done" for value, _ in results)

    def test_error_propagates_to_waiters(self) -> None:
        flight: SingleFlight[None] = SingleFlight()
        started = threading.Event()
        release = threading.Event()
        errors = []

        def failing() -> None:
            started.set()
            release.wait(5)
            raise RuntimeError("boom")

        def run() -> None:
            try:
                flight.do("k", failing)
            except RuntimeError as e:
                errors.append(str(e))

        leader = threading.Thread(target=run)
        leader.start()
        assert started.wait(5)
        follower = threading.Thread(target=run)
        follower.start()
        _wait_for_waiters(flight, "k", 1)

        release.set()
        leader.join(5)
        follower.join(5)
        assert errors == ["boom", "boom"]

    def test_different_keys_independent(self) -> None:
        flight: SingleFlight[str] = SingleFlight()
        release = threading.Event()
        started = threading.Event()

        def blocked() -> str:
            started.set()
            release.wait(5)
            return "a"

        t = threading.Thread(target=lambda: flight.do("a", blocked))
        t.start()
        assert started.wait(5)
        assert flight.do("b", lambda: "b") == ("b", False)
        release.set()
        t.join(5)

    def test_leader_exception_raised(self) -> None:
        flight: SingleFlight[None] = SingleFlight()

        def bad() -> None:
            raise ValueError("nope")

        with pytest.raises(ValueError, match="nope"):
            flight.do("k", bad)
        assert not flight.in_flight("k")
