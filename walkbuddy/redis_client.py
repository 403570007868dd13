"""Redis handle for safety analysis status (see services/analysis_store).

Set once by the app lifespan; tests install an in-memory stand-in.
"""
import redis.asyncio as aioredis

_redis: aioredis.Redis | None = None


def set_redis(client: aioredis.Redis | None) -> None:
    global _redis
    _redis = client


async def get_redis() -> aioredis.Redis:
    """The installed client; analysis status reads and writes fail loudly without one."""
    if _redis is None:
        raise RuntimeError("Redis not initialized (analysis status unavailable)")
    return _redis
