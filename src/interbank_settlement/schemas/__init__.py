"""Pydantic API schemas."""

from interbank_settlement.schemas.transactions import (
    B2BRequest,
    B2BResponse,
    CreateTransactionRequest,
    ErrorResponse,
    HealthResponse,
    JWKSResponse,
    TransactionResponse,
)

__all__ = [
    "B2BRequest",
    "B2BResponse",
    "CreateTransactionRequest",
    "ErrorResponse",
    "HealthResponse",
    "JWKSResponse",
    "TransactionResponse",
]
