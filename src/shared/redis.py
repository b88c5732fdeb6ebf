"""Redis connection factory and key helpers."""

import redis

from shared.config import Settings


def create_client(settings: Settings) -> redis.Redis:
    """Build a client for the configured store.

    Responses are decoded so that every value read back is a ``str``.
    """
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


def key(*parts: str) -> str:
    return ":".join(str(part) for part in parts)
