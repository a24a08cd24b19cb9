"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the long-lived settlement components built in the lifespan, Redis, and the
authenticated user.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import redis.asyncio as aioredis
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from interbank_settlement.config import Settings, get_settings
from interbank_settlement.domain.exceptions import AuthError, MalformedAuthHeaderError
from interbank_settlement.infrastructure.database.engine import get_async_session
from interbank_settlement.infrastructure.database.repositories import SessionRepository
from interbank_settlement.infrastructure.redis_client import get_redis_or_none
from interbank_settlement.settlement.currency import CurrencyConverter
from interbank_settlement.settlement.directory import BankDirectory
from interbank_settlement.settlement.signing import MessageSigner
from interbank_settlement.settlement.verification import MessageVerifier


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_directory(request: Request) -> BankDirectory:
    """Provide the shared BankDirectory."""
    return request.app.state.directory


def get_signer(request: Request) -> MessageSigner:
    """Provide this bank's MessageSigner."""
    return request.app.state.signer


def get_verifier(request: Request) -> MessageVerifier:
    """Provide the shared MessageVerifier (and its keyset cache)."""
    return request.app.state.verifier


def get_converter(request: Request) -> CurrencyConverter:
    """Provide the CurrencyConverter."""
    return request.app.state.converter


def get_redis_client() -> aioredis.Redis | None:
    """Provide the Redis client, or None when Redis is unavailable."""
    return get_redis_or_none()


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


async def get_current_user_id(
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_db_session),
) -> str:
    """Resolve `Authorization: Bearer <token>` to the session's user id.

    Raises:
        AuthError: Header missing or the token matches no session.
        MalformedAuthHeaderError: Header is not `Bearer <token>`.
    """
    if authorization is None:
        raise AuthError("Missing authorization")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise MalformedAuthHeaderError()

    user_id = await SessionRepository(session).get_user_id(parts[1])
    if user_id is None:
        raise AuthError("Invalid token")
    return user_id
