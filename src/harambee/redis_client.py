"""Redis connection pool.

Redis backs rate limiting, login lockout counters and the admin dashboard
cache. Each of them degrades when the pool is absent, so callers reach the
client through ``get_optional_redis``.
"""

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Create the shared client. The first command opens the connection."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def use_redis(client: redis.Redis | None) -> None:
    """Install an already-built client (or clear it with None)."""
    global _pool  # noqa: PLW0603
    _pool = client


def get_optional_redis() -> redis.Redis | None:
    """FastAPI dependency variant that yields None instead of raising."""
    return _pool
