"""Pydantic schemas for the settlement API.

Wire names are camelCase to match what peer banks and the central registry
send; Python attribute names stay snake_case.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateTransactionRequest(_CamelModel):
    """Request body for a customer's outbound transfer."""

    account_from: str = Field(
        ...,
        min_length=1,
        description="Account number at this bank to debit",
        examples=["bf5a1b2c3d4e5f"],
    )
    account_to: str = Field(
        ...,
        min_length=4,
        description="Destination account; its first three characters route to the bank",
        examples=["bf7c0ffee12345"],
    )
    amount: int = Field(
        ...,
        description="Amount in minor units of the source account's currency",
        examples=[1000],
    )
    explanation: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Free-text explanation shown to the receiver",
    )


class B2BRequest(BaseModel):
    """Inbound settlement request from a peer bank."""

    jwt: Any = Field(
        default=None,
        description="Compact RS256 JWS whose payload is the transfer; anything else is a malformed token",
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class TransactionResponse(_CamelModel):
    """Response schema for a transaction record."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: uuid.UUID
    direction: str
    account_from: str
    account_to: str
    amount: int
    currency: str
    explanation: str
    sender_name: str
    receiver_name: str | None
    status: str
    status_details: str
    created_at: datetime
    updated_at: datetime


class B2BResponse(_CamelModel):
    """Successful inbound settlement; lets the sender complete its record."""

    receiver_name: str


class JWKSResponse(BaseModel):
    """This bank's published verification keys."""

    keys: list[dict[str, Any]]


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str
    code: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
    directory: str = "unknown"
    processor: str = "unknown"
