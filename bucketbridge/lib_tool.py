"""Manage the token bucket function library on a Redis server.

    python -m bucketbridge.lib_tool status
    python -m bucketbridge.lib_tool load --replace
    python -m bucketbridge.lib_tool unload --url redis://cache:6379/0
"""

from __future__ import annotations

import argparse

import redis

from .config import settings
from .lib import LIB_NAME, check_lib_is_loaded, ensure_lib_loaded, load_lib, unload_lib


def run(command: str, client, replace: bool = False) -> int:
    if command == "status":
        loaded = check_lib_is_loaded(client)
        print(f"{LIB_NAME}: {'loaded' if loaded else 'not loaded'}")
        return 0 if loaded else 1
    if command == "load":
        if replace:
            load_lib(client, replace=True)
            print(f"{LIB_NAME}: replaced")
        elif ensure_lib_loaded(client):
            print(f"{LIB_NAME}: loaded")
        else:
            print(f"{LIB_NAME}: already loaded")
        return 0
    if command == "unload":
        removed = unload_lib(client)
        print(f"{LIB_NAME}: {'deleted' if removed else 'not loaded'}")
        return 0
    raise ValueError(f"unknown command: {command}")


def main(argv=None) -> None:
    ap = argparse.ArgumentParser(prog="bucketbridge.lib_tool")
    ap.add_argument("command", choices=["status", "load", "unload"])
    ap.add_argument("--url", default=None, help="defaults to REDIS_URL")
    ap.add_argument("--replace", action="store_true", help="reload even if present")
    a = ap.parse_args(argv)
    client = redis.Redis.from_url(a.url or settings.REDIS_URL, decode_responses=True)
    try:
        code = run(a.command, client, replace=a.replace)
    finally:
        client.close()
    raise SystemExit(code)


if __name__ == "__main__":
    main()
