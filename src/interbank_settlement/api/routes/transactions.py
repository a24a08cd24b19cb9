"""Transaction REST API routes.

Routes:
    POST   /transactions        — Customer creates an outbound transfer
    POST   /transactions/b2b    — Peer bank delivers a signed inbound transfer
    GET    /transactions/jwks   — This bank's public verification keys
"""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from interbank_settlement.api.deps import (
    get_app_settings,
    get_converter,
    get_current_user_id,
    get_db_session,
    get_directory,
    get_redis_client,
    get_signer,
    get_verifier,
)
from interbank_settlement.config import Settings
from interbank_settlement.domain.exceptions import DuplicateOperationError
from interbank_settlement.infrastructure.redis_client import (
    claim_idempotency,
    release_idempotency,
    token_idempotency_key,
)
from interbank_settlement.logging_config import get_logger
from interbank_settlement.schemas.transactions import (
    B2BRequest,
    B2BResponse,
    CreateTransactionRequest,
    ErrorResponse,
    JWKSResponse,
    TransactionResponse,
)
from interbank_settlement.services.inbound_settlement import InboundSettlementHandler
from interbank_settlement.services.transfer_service import TransferService
from interbank_settlement.settlement.currency import CurrencyConverter
from interbank_settlement.settlement.directory import BankDirectory
from interbank_settlement.settlement.signing import MessageSigner
from interbank_settlement.settlement.verification import MessageVerifier

router = APIRouter(prefix="/transactions", tags=["Transactions"])
logger = get_logger(__name__)

_ERRORS = {
    code: {"model": ErrorResponse}
    for code in (400, 401, 402, 403, 404, 409, 500, 502)
}


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=201,
    responses=_ERRORS,
    summary="Create an outbound transfer",
)
async def create_transaction(
    request: CreateTransactionRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db_session),
    directory: BankDirectory = Depends(get_directory),
) -> TransactionResponse:
    """Debit the source account and queue the transfer for settlement."""
    svc = TransferService(session, directory)
    transaction = await svc.create_transfer(
        user_id=user_id,
        account_from=request.account_from,
        account_to=request.account_to,
        amount=request.amount,
        explanation=request.explanation,
    )
    return TransactionResponse.model_validate(transaction)


# ---------------------------------------------------------------------------
# Inbound (bank to bank)
# ---------------------------------------------------------------------------


@router.post(
    "/b2b",
    response_model=B2BResponse,
    responses=_ERRORS,
    summary="Receive a signed transfer from another bank",
)
async def receive_b2b(
    request: B2BRequest,
    session: AsyncSession = Depends(get_db_session),
    directory: BankDirectory = Depends(get_directory),
    verifier: MessageVerifier = Depends(get_verifier),
    converter: CurrencyConverter = Depends(get_converter),
    redis: aioredis.Redis | None = Depends(get_redis_client),
    settings: Settings = Depends(get_app_settings),
) -> B2BResponse:
    """Verify the token, credit the destination account, return its owner."""
    handler = InboundSettlementHandler(
        session,
        directory,
        verifier,
        converter,
        credit_converted_amount=settings.inbound_credit_converted_amount,
    )

    token = request.jwt if isinstance(request.jwt, str) and request.jwt else None
    replay_key = token_idempotency_key(token) if token is not None else None
    if redis is not None and replay_key is not None:
        if not await claim_idempotency(redis, replay_key):
            raise DuplicateOperationError(replay_key)

    try:
        result = await handler.handle(request.jwt)
        await session.commit()
    except Exception:
        if redis is not None and replay_key is not None:
            await release_idempotency(redis, replay_key)
        raise

    return B2BResponse(receiver_name=result.receiver_name)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@router.get(
    "/jwks",
    response_model=JWKSResponse,
    summary="Public keys that verify this bank's outbound transfers",
)
async def get_jwks(signer: MessageSigner = Depends(get_signer)) -> JWKSResponse:
    return JWKSResponse(**signer.published_keys())
