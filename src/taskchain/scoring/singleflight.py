"""Single-flight execution — collapse concurrent calls for the same key.

While a call for a key is running, further callers for that key wait for
its result instead of starting their own. Once it finishes, the next caller
starts a fresh call. Different keys never wait on each other.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class _Call(Generic[T]):
    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Optional[T] = None
        self.error: Optional[BaseException] = None
        self.waiters = 0


class SingleFlight(Generic[T]):
    """Per-key deduplication of concurrent calls."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[Any, _Call[T]] = {}

    def do(self, key: Any, fn: Callable[[], T]) -> tuple[T, bool]:
        """Run fn for key, or join the call already in flight.

        Returns (result, shared). shared is True when this caller joined
        another caller's in-flight call. Exceptions from fn propagate to
        every caller of that call.
        """
        with self._lock:
            call = self._calls.get(key)
            if call is not None:
                call.waiters += 1
                leader = False
            else:
                call = _Call()
                self._calls[key] = call
                leader = True

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result, True

        try:
            call.result = fn()
        except BaseException as e:
            call.error = e
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()
        return call.result, False

    def in_flight(self, key: Any) -> bool:
        with self._lock:
            return key in self._calls

    def waiters(self, key: Any) -> int:
        """Number of callers currently waiting on the in-flight call for key."""
        with self._lock:
            call = self._calls.get(key)
            return call.waiters if call is not None else 0
