"""Stores that run one bucket transition as an indivisible step."""

from __future__ import annotations

import heapq
import threading
from typing import Any, Optional, Protocol, Tuple

from .lib import LIB_FUNCTION_NAME, ensure_lib_loaded
from .transition import BucketState, transition


class Backend(Protocol):
    name: str

    def setup(self) -> None: ...

    def use_token_bucket(
        self,
        key: str,
        capacity: float,
        cost: float,
        refill_rate: float,
        now_ms: int,
    ) -> Tuple[str, float]: ...


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class RedisBackend:
    """Run transitions inside Redis with ``FCALL``.

    Redis executes a function to completion before serving any other
    command, which is what makes concurrent consumers of one key safe.
    """

    name = "redis"

    def __init__(self, client) -> None:
        self.client = client

    def setup(self) -> None:
        self.client.ping()
        ensure_lib_loaded(self.client)

    def use_token_bucket(
        self,
        key: str,
        capacity: float,
        cost: float,
        refill_rate: float,
        now_ms: int,
    ) -> Tuple[str, float]:
        outcome, tokens = self.client.fcall(
            LIB_FUNCTION_NAME,
            1,
            key,
            str(capacity),
            str(cost),
            str(refill_rate),
            str(int(now_ms)),
        )
        return _text(outcome), float(_text(tokens))


class _Record:
    __slots__ = ("state", "expires_at")

    def __init__(self, state: BucketState, expires_at: int) -> None:
        self.state = state
        self.expires_at = expires_at


class MemoryBackend:
    """Single-process store with the same semantics as the Redis library.

    Expiry deadlines are kept in the callers' millisecond clock, so a
    record is gone once a caller's ``now_ms`` reaches it. Every call
    sweeps the records whose deadline has passed, whichever key they
    belong to.
    """

    name = "memory"

    def __init__(self) -> None:
        self._records: dict[str, _Record] = {}
        # (expires_at, key); entries superseded by a later write are
        # skipped when popped
        self._deadlines: list[Tuple[int, str]] = []
        self._lock = threading.Lock()

    def setup(self) -> None:
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _sweep(self, now_ms: int) -> None:
        while self._deadlines and self._deadlines[0][0] <= now_ms:
            _, key = heapq.heappop(self._deadlines)
            record = self._records.get(key)
            if record is not None and record.expires_at <= now_ms:
                del self._records[key]

    def _load(self, key: str, now_ms: int) -> Optional[BucketState]:
        record = self._records.get(key)
        if record is None:
            return None
        if now_ms >= record.expires_at:
            del self._records[key]
            return None
        return record.state

    def use_token_bucket(
        self,
        key: str,
        capacity: float,
        cost: float,
        refill_rate: float,
        now_ms: int,
    ) -> Tuple[str, float]:
        with self._lock:
            self._sweep(now_ms)
            result = transition(
                self._load(key, now_ms), capacity, cost, refill_rate, now_ms
            )
            if result.expires_in > 0:
                expires_at = now_ms + result.expires_in * 1000
                self._records[key] = _Record(result.state, expires_at)
                heapq.heappush(self._deadlines, (expires_at, key))
            else:
                self._records.pop(key, None)
        return result.outcome, result.tokens

    def snapshot(self, key: str) -> Optional[Tuple[BucketState, int]]:
        """Return the stored state and expiry deadline (ms), if any."""

        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            return record.state, record.expires_at

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._deadlines.clear()
