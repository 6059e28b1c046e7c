"""Token bucket state transition, mirroring ``lua/token_bucket.lua``.

Redis runs the Lua version atomically; this module is the same math in
Python for the in-process backend and for reasoning about results.
"""

from __future__ import annotations

import math
from typing import NamedTuple, Optional

MS_PER_MINUTE = 60_000

SUCCESS = "SUCCESS"
FAIL = "FAIL"


class BucketState(NamedTuple):
    tokens: float
    last_refilled_at: int


class Transition(NamedTuple):
    state: BucketState
    admitted: bool
    tokens: float
    expires_in: int

    @property
    def outcome(self) -> str:
        return SUCCESS if self.admitted else FAIL


def per_ms(refill_rate: float) -> float:
    """Convert a per-minute refill rate into tokens per millisecond."""

    return refill_rate / MS_PER_MINUTE


def refill(
    tokens: float,
    last_refilled_at: int,
    capacity: float,
    refill_rate: float,
    now: int,
) -> float:
    """Return the token count at ``now``, capped at ``capacity``.

    Elapsed time is clamped to zero, so a caller whose clock runs behind
    the stored timestamp sees no refill instead of losing tokens.
    """

    elapsed = max(0, now - last_refilled_at)
    return min(float(capacity), tokens + per_ms(refill_rate) * elapsed)


def expiry_seconds(
    tokens: float, capacity: float, refill_rate: float, lead_ms: int = 0
) -> int:
    """Seconds until a bucket holding ``tokens`` is full again.

    ``lead_ms`` is how far the stored refill timestamp is ahead of the
    caller's clock; refill only starts counting from that timestamp.
    """

    missing = capacity - tokens
    if missing <= 0:
        return 0
    return math.ceil((missing / per_ms(refill_rate) + lead_ms) / 1000)


def transition(
    state: Optional[BucketState],
    capacity: float,
    cost: float,
    refill_rate: float,
    now: int,
) -> Transition:
    if state is None:
        state = BucketState(float(capacity), now)

    refilled = refill(state.tokens, state.last_refilled_at, capacity, refill_rate, now)
    admitted = cost <= refilled
    updated = refilled - cost if admitted else refilled

    new_state = BucketState(updated, max(now, state.last_refilled_at))
    return Transition(
        state=new_state,
        admitted=admitted,
        tokens=updated,
        expires_in=expiry_seconds(
            updated, capacity, refill_rate, new_state.last_refilled_at - now
        ),
    )
