from __future__ import annotations

import time
import uuid

import redis

from gamehost.core.config import settings


def get_redis() -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


def acquire_lock(key: str, *, ttl_seconds: int, wait_seconds: float = 0.0, poll_seconds: float = 0.1) -> str | None:
    """Take a ``SET NX EX`` lock, polling up to ``wait_seconds``.

    Returns the owner token on success, ``None`` if the lock stayed busy.
    """

    r = get_redis()
    token = uuid.uuid4().hex
    deadline = time.monotonic() + max(0.0, float(wait_seconds))
    while True:
        if r.set(key, token, nx=True, ex=int(ttl_seconds)):
            return token
        if time.monotonic() >= deadline:
            return None
        time.sleep(poll_seconds)


def release_lock(key: str, token: str) -> None:
    r = get_redis()
    # Only the owner may release; an expired lock may already belong to someone else.
    if r.get(key) == token:
        r.delete(key)
