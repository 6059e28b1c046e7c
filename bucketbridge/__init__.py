"""BucketBridge: token buckets whose state lives in Redis."""

from typing import TYPE_CHECKING

from .bucket import (
    Bucket,
    BucketConfig,
    ConsumeResult,
    TokenBucketError,
    create_bucket,
    is_token_bucket_error,
)
from .client import initialize

__version__ = "1.0.0"

if TYPE_CHECKING:  # pragma: no cover - import-time convenience for type checkers
    from .main import app as app

__all__ = [
    "Bucket",
    "BucketConfig",
    "ConsumeResult",
    "TokenBucketError",
    "create_bucket",
    "initialize",
    "is_token_bucket_error",
    "app",
    "__version__",
]


def __getattr__(name: str):
    if name == "app":
        from .main import app as _app
        return _app
    raise AttributeError(f"module 'bucketbridge' has no attribute {name!r}")
