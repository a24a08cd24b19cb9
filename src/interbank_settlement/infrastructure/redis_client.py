"""Redis client for inbound replay protection.

A peer bank that retries after a lost response re-sends the very same signed
token; remembering the digest of every applied token lets the b2b endpoint
refuse to credit it twice.

Usage:
    from interbank_settlement.infrastructure.redis_client import get_redis_or_none, claim_idempotency

    redis = get_redis_or_none()
    if redis is not None and not await claim_idempotency(redis, key):
        ...  # already applied
"""

from __future__ import annotations

import hashlib

import redis.asyncio as aioredis

from interbank_settlement.config import get_settings
from interbank_settlement.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    await client.ping()
    _redis_client = client
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis_or_none() -> aioredis.Redis | None:
    """Return the client, or None when Redis was unreachable at startup."""
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency Helpers ---


def token_idempotency_key(token: str) -> str:
    """Digest a signed token into a fixed-size idempotency key."""
    return "inbound-jwt:" + hashlib.sha256(token.encode("utf-8")).hexdigest()


async def claim_idempotency(redis: aioredis.Redis, key: str, value: str = "1") -> bool:
    """Atomically claim an idempotency key with a TTL.

    Returns True if this caller claimed the key, False if it was already used.
    """
    settings = get_settings()
    claimed = await redis.set(
        f"idempotency:{key}",
        value,
        ex=settings.redis_idempotency_ttl_seconds,
        nx=True,
    )
    return bool(claimed)


async def release_idempotency(redis: aioredis.Redis, key: str) -> None:
    """Give a claimed key back, e.g. when the operation it guarded failed."""
    await redis.delete(f"idempotency:{key}")
