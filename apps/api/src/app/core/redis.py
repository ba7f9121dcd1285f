"""
Redis Configuration

Async Redis client for the document job record store.
"""

from redis.asyncio import Redis, from_url

from app.core.config import settings

# Redis client instance for the API process
redis_client: Redis | None = None


def create_redis_client() -> Redis:
    """Create a new client; worker tasks own one per event loop."""
    return from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )


async def init_redis() -> Redis:
    """
    Initialize Redis connection.

    Call this on application startup.
    """
    global redis_client
    redis_client = create_redis_client()
    await redis_client.ping()
    return redis_client


async def get_redis() -> Redis | None:
    """
    Get Redis client instance.

    Returns None if Redis has not been initialized.
    """
    return redis_client


def is_redis_available() -> bool:
    """Check if Redis client is initialized and available."""
    return redis_client is not None


async def close_redis() -> None:
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
