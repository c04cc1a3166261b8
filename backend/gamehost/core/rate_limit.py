from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from gamehost.core.config import settings
from gamehost.core.redis_client import get_redis


@dataclass(frozen=True)
class RateLimit:
    key: str
    limit: int
    window_seconds: int


def client_ip(request: Request) -> str | None:
    if bool(getattr(settings, "trust_proxy_headers", False)):
        xri = str(request.headers.get("x-real-ip") or "").strip()
        if xri:
            return xri
        xff = request.headers.get("x-forwarded-for")
        if xff:
            ip = xff.split(",")[0].strip()
            if ip:
                return ip
    if request.client and request.client.host:
        return request.client.host
    return None


def rate_limit(*, key_prefix: str, limit: int, window_seconds: int):
    """Fixed-window limiter keyed by route template and client address.

    Uses the route template rather than the concrete path so that wildcard
    file routes share one bucket per game build.
    """

    async def _dep(request: Request) -> RateLimit:
        route = request.scope.get("route")
        path = str(getattr(route, "path", "") or request.url.path)
        ip = client_ip(request) or "unknown"
        key = f"rl:{key_prefix}:{request.method}:{path}:{ip}"

        r = get_redis()
        try:
            current = r.incr(key)
            if current == 1:
                r.expire(key, int(window_seconds))
        except Exception:
            # Fail open when Redis is unavailable.
            return RateLimit(key=key, limit=int(limit), window_seconds=int(window_seconds))

        if int(current) > int(limit):
            ttl = r.ttl(key)
            retry_after = int(ttl) if ttl and ttl > 0 else int(window_seconds)
            raise HTTPException(
                status_code=429,
                detail={"error_code": "rate_limited", "error_message": "rate limit exceeded"},
                headers={"Retry-After": str(retry_after)},
            )

        return RateLimit(key=key, limit=int(limit), window_seconds=int(window_seconds))

    return Depends(_dep)
