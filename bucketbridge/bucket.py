"""Bucket handles: local configuration plus calls into the active store."""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, NamedTuple, Optional

from pydantic import BaseModel, Field

from .backends import Backend
from .client import get_backend
from .config import settings
from .lib import LIB_VERSION
from .transition import FAIL

log = logging.getLogger(__name__)

NOT_ENOUGH_TOKENS = "NOT_ENOUGH_TOKENS"


def _now_ms() -> int:
    return int(time.time() * 1000)


class BucketConfig(BaseModel):
    id: str = Field(..., min_length=1)
    capacity: float = Field(..., gt=0, allow_inf_nan=False)
    refill_rate: float = Field(
        ..., gt=0, allow_inf_nan=False, description="tokens per minute"
    )


class TokenBucketError(Exception):
    """Raised by :meth:`Bucket.consume` when the bucket cannot pay ``cost``."""

    def __init__(
        self,
        bucket: "Bucket",
        message: str,
        token_amount: float,
        cost: float,
        reason: str = NOT_ENOUGH_TOKENS,
    ) -> None:
        super().__init__(message)
        self.bucket = bucket
        self.reason = reason
        self.token_amount = token_amount
        self.cost = cost

    @property
    def retry_after(self) -> Optional[int]:
        """Whole seconds until ``cost`` tokens will be available.

        None when the cost exceeds the bucket's capacity and can never be
        paid.
        """

        if self.cost > self.bucket.capacity:
            return None
        missing = max(0.0, self.cost - self.token_amount)
        return math.ceil(missing / (self.bucket.refill_rate / 60))


def is_token_bucket_error(error: object) -> bool:
    return isinstance(error, TokenBucketError)


class ConsumeResult(NamedTuple):
    success: bool
    token_amount: float
    error: Optional[TokenBucketError] = None


class Bucket:
    def __init__(
        self,
        config: BucketConfig,
        backend: Backend,
        clock: Callable[[], int] = _now_ms,
        key_prefix: Optional[str] = None,
    ) -> None:
        self._config = config
        self._backend = backend
        self._clock = clock
        prefix = key_prefix or settings.KEY_PREFIX
        self.key = f"{prefix}_{LIB_VERSION}_{config.id}"

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def capacity(self) -> float:
        return self._config.capacity

    @property
    def refill_rate(self) -> float:
        return self._config.refill_rate

    def safe_consume(self, cost: float = 1) -> ConsumeResult:
        """Try to take ``cost`` tokens; denial is reported, not raised."""

        if cost < 0:
            raise ValueError(f"cost must be >= 0, got {cost}")
        outcome, tokens = self._backend.use_token_bucket(
            self.key, self.capacity, cost, self.refill_rate, self._clock()
        )
        if outcome == FAIL:
            message = (
                "Not enough tokens!\n"
                f"Tried to consume {cost} from bucket with id {self.id}, "
                f"but there are only {tokens} tokens!"
            )
            log.debug("bucket %s denied cost=%s tokens=%s", self.id, cost, tokens)
            error = TokenBucketError(self, message, token_amount=tokens, cost=cost)
            return ConsumeResult(False, tokens, error)
        return ConsumeResult(True, tokens)

    def consume(self, cost: float = 1) -> ConsumeResult:
        result = self.safe_consume(cost)
        if result.error is not None:
            raise result.error
        return result

    def get_token_amount(self) -> float:
        # A zero-cost access always succeeds; an absent record reports a
        # full bucket.
        return self.consume(0).token_amount

    def __repr__(self) -> str:
        return (
            f"Bucket(id={self.id!r}, capacity={self.capacity}, "
            f"refill_rate={self.refill_rate})"
        )


def create_bucket(
    id: str,
    capacity: float,
    refill_rate: float,
    *,
    backend: Optional[Backend] = None,
    clock: Optional[Callable[[], int]] = None,
    key_prefix: Optional[str] = None,
) -> Bucket:
    """Build a handle for bucket ``id``.

    Configuration is validated here so bad values never reach the store.
    Without an explicit ``backend`` the library must be initialized.
    """

    config = BucketConfig(id=id, capacity=capacity, refill_rate=refill_rate)
    return Bucket(
        config,
        backend if backend is not None else get_backend(),
        clock=clock or _now_ms,
        key_prefix=key_prefix,
    )
