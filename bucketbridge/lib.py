"""Registration of the token bucket Redis Function library."""

from __future__ import annotations

import logging
from importlib import resources
from typing import Any, Iterable

from redis.exceptions import ResponseError

log = logging.getLogger(__name__)

LIB_PREFIX = "token_bucket_redis"
LIB_VERSION = "1_0_0"
LIB_NAME = f"{LIB_PREFIX}_{LIB_VERSION}"
LIB_FUNCTION_PREFIX = "use_token_bucket"
LIB_FUNCTION_NAME = f"{LIB_FUNCTION_PREFIX}_{LIB_VERSION}"


def lib_source() -> str:
    """Return the Lua source shipped with the package."""

    return (
        resources.files("bucketbridge")
        .joinpath("lua").joinpath("token_bucket.lua")
        .read_text(encoding="utf-8")
    )


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _library_names(entries: Iterable[Any]) -> list[str]:
    # RESP3 replies are maps; RESP2 replies are flat [key, value, ...] lists.
    names: list[str] = []
    for entry in entries or []:
        if isinstance(entry, dict):
            fields = {_text(k): v for k, v in entry.items()}
        else:
            items = list(entry)
            fields = {_text(k): v for k, v in zip(items[::2], items[1::2])}
        if "library_name" in fields:
            names.append(_text(fields["library_name"]))
    return names


def check_lib_is_loaded(client) -> bool:
    # Filtering by LIBRARYNAME is a pattern match, so compare exact names.
    loaded = client.function_list(library=LIB_NAME)
    return LIB_NAME in _library_names(loaded)


def load_lib(client, replace: bool = False) -> None:
    client.function_load(lib_source(), replace=replace)
    log.info("loaded redis function library %s", LIB_NAME)


def ensure_lib_loaded(client) -> bool:
    """Load the library unless the store already has it.

    Returns True when this call loaded it. Several processes may race
    here; losing the race is not an error.
    """

    if check_lib_is_loaded(client):
        log.debug("redis function library %s already loaded", LIB_NAME)
        return False
    try:
        load_lib(client)
    except ResponseError as exc:
        if "already exists" not in str(exc):
            raise
        log.debug("redis function library %s loaded concurrently", LIB_NAME)
        return False
    return True


def unload_lib(client) -> bool:
    try:
        client.function_delete(LIB_NAME)
    except ResponseError as exc:
        if "not found" not in str(exc).lower():
            raise
        return False
    log.info("deleted redis function library %s", LIB_NAME)
    return True
