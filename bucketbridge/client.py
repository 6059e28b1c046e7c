from __future__ import annotations

import logging
from typing import Optional

from .backends import Backend, RedisBackend

log = logging.getLogger(__name__)

_backend: Optional[Backend] = None


def initialize(store_connection) -> Backend:
    """Bind the library to a store and make sure the Redis function exists.

    ``store_connection`` is a ``redis.Redis`` client or a ready backend
    such as :class:`~bucketbridge.backends.MemoryBackend`. Connection and
    registration errors propagate to the caller.
    """

    global _backend
    if hasattr(store_connection, "use_token_bucket"):
        backend = store_connection
    else:
        backend = RedisBackend(store_connection)
    backend.setup()
    _backend = backend
    log.info("bucketbridge initialized with %s backend", backend.name)
    return backend


def get_backend() -> Backend:
    if _backend is None:
        raise RuntimeError(
            "Cannot call `create_bucket` without having initialized the library first!"
        )
    return _backend


def reset() -> None:
    global _backend
    _backend = None
