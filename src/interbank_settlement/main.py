"""FastAPI application entry point for the interbank settlement node.

Lifecycle:
    1. Startup: logging, database (tables in dev mode), Redis, one shared
       httpx client, then the settlement components. The directory is warmed
       from the persisted registry snapshot and the processor is started.
    2. Running: serve the transaction API while the processor settles
       Pending transfers in the background.
    3. Shutdown: stop the processor between passes, then close the HTTP
       client, database and Redis.

Run with:
    uvicorn interbank_settlement.main:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import httpx
from fastapi import FastAPI

from interbank_settlement.config import get_settings
from interbank_settlement.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        bank_prefix=settings.bank_prefix,
    )

    # 2. Initialize database
    from interbank_settlement.infrastructure.database.engine import (
        close_db,
        get_session_factory,
        init_db,
    )
    from interbank_settlement.infrastructure.database.repositories import BankRepository

    await init_db()
    session_factory = get_session_factory()

    # 3. Initialize Redis (replay protection is skipped without it)
    from interbank_settlement.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    # 4. Settlement components
    from interbank_settlement.services.transaction_processor import TransactionProcessor
    from interbank_settlement.settlement import (
        BankDirectory,
        CurrencyConverter,
        HttpRateSource,
        MessageSigner,
        MessageVerifier,
    )

    client = httpx.AsyncClient()
    directory = BankDirectory.from_settings(settings, client, session_factory=session_factory)
    async with session_factory() as session:
        directory.warm(await BankRepository(session).list_all())

    signer = MessageSigner.from_settings(settings)
    verifier = MessageVerifier(
        client,
        cache_ttl=settings.jwks_cache_ttl_seconds,
        timeout=settings.registry_timeout_seconds,
    )
    converter = CurrencyConverter(
        HttpRateSource(client, settings.rates_url, timeout=settings.rates_timeout_seconds)
    )
    processor = TransactionProcessor.from_settings(
        settings, session_factory, directory, signer, client
    )

    app.state.http_client = client
    app.state.directory = directory
    app.state.signer = signer
    app.state.verifier = verifier
    app.state.converter = converter
    app.state.processor = processor

    if settings.processor_enabled:
        processor.start()

    logger.info(
        "app.started",
        host=settings.app_host,
        port=settings.app_port,
        key_id=signer.key_id,
        banks=len(directory),
    )

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await processor.stop()
    await client.aclose()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Interbank Settlement",
        description=(
            "Settles transfers between banks over signed, "
            "registry-routed bank-to-bank messages."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from interbank_settlement.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from interbank_settlement.api.routes.health import router as health_router
    from interbank_settlement.api.routes.transactions import router as transactions_router

    app.include_router(health_router)
    app.include_router(transactions_router)

    return app


# The app instance used by Uvicorn
app = create_app()
