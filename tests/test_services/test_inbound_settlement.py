"""Tests for InboundSettlementHandler: verify first, then credit and record."""

from __future__ import annotations

import dataclasses
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import REGISTRY_URL
from interbank_settlement.domain.enums import EventType, TransactionStatus
from interbank_settlement.domain.exceptions import (
    AccountNotFoundError,
    MalformedTokenError,
    PayloadValidationError,
    RateUnavailableError,
    SignatureError,
    UnknownSenderBankError,
)
from interbank_settlement.infrastructure.database.orm_models import Account, Transaction
from interbank_settlement.infrastructure.database.repositories import EventRepository
from interbank_settlement.services.inbound_settlement import InboundSettlementHandler
from interbank_settlement.settlement.currency import CurrencyConverter
from interbank_settlement.settlement.directory import BankDirectory
from interbank_settlement.settlement.verification import MessageVerifier

PEER_JWKS_URL = "http://bf7.test/transactions/jwks"


class FixedRates:
    def __init__(self, rate: str | None) -> None:
        self._rate = rate

    async def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        if self._rate is None:
            raise RateUnavailableError(from_currency, to_currency, "feed down")
        return Decimal(self._rate)


@pytest.fixture
def settle(router, http_client, peer_bank, peer_signer, session_factory):
    """Run one inbound token through a handler in its own unit of work."""
    router.json("GET", PEER_JWKS_URL, peer_signer.published_keys())
    directory = BankDirectory(http_client, REGISTRY_URL, api_key="secret")
    directory.warm([peer_bank])
    verifier = MessageVerifier(http_client)

    async def _settle(token, rate: str | None = "1.1", credit_converted_amount: bool = False):
        async with session_factory() as session:
            handler = InboundSettlementHandler(
                session,
                directory,
                verifier,
                CurrencyConverter(FixedRates(rate)),
                credit_converted_amount=credit_converted_amount,
            )
            result = await handler.handle(token)
            await session.commit()
            return result

    return _settle


async def balance_of(session_factory, number: str) -> int:
    async with session_factory() as session:
        return (await session.get(Account, number)).balance


async def transaction_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(Transaction))


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_credits_account_and_returns_owner(
        self, settle, add_account, session_factory, peer_signer, transfer_payload
    ) -> None:
        await add_account(balance=500)

        result = await settle(peer_signer.sign(transfer_payload))

        assert result.receiver_name == "John Smith"
        assert result.credited_amount == 1000
        assert await balance_of(session_factory, "bf5000111") == 1500

    @pytest.mark.asyncio
    async def test_writes_inbound_ledger_record(
        self, settle, add_account, session_factory, peer_signer, transfer_payload
    ) -> None:
        await add_account()

        result = await settle(peer_signer.sign(transfer_payload))

        async with session_factory() as session:
            txn = await session.scalar(select(Transaction))
            events = await EventRepository(session).get_by_transaction(txn.id)
        assert str(txn.id) == result.transaction_id
        assert txn.direction == "inbound"
        assert txn.status == TransactionStatus.COMPLETED
        assert txn.sender_name == "Jane Doe"
        assert txn.receiver_name == "John Smith"
        assert [e.event_type for e in events] == [EventType.INBOUND_CREDITED]
        assert events[0].metadata_json["sender_bank"] == "bf7"


class TestCurrency:
    @pytest.mark.asyncio
    async def test_original_amount_credited_by_default(
        self, settle, add_account, session_factory, peer_signer, transfer_payload
    ) -> None:
        await add_account(currency="USD", balance=0)

        result = await settle(peer_signer.sign(transfer_payload), rate="1.1")

        assert result.converted_amount == 1100
        assert result.credited_amount == 1000
        assert await balance_of(session_factory, "bf5000111") == 1000

    @pytest.mark.asyncio
    async def test_converted_amount_credited_when_enabled(
        self, settle, add_account, session_factory, peer_signer, transfer_payload
    ) -> None:
        await add_account(currency="USD", balance=0)

        result = await settle(
            peer_signer.sign(transfer_payload), rate="1.1", credit_converted_amount=True
        )

        assert result.credited_amount == 1100
        assert await balance_of(session_factory, "bf5000111") == 1100

    @pytest.mark.asyncio
    async def test_missing_rate_credits_nothing(
        self, settle, add_account, session_factory, peer_signer, transfer_payload
    ) -> None:
        await add_account(currency="USD", balance=0)

        with pytest.raises(RateUnavailableError):
            await settle(peer_signer.sign(transfer_payload), rate=None)

        assert await balance_of(session_factory, "bf5000111") == 0
        assert await transaction_count(session_factory) == 0


class TestRejections:
    @pytest.mark.asyncio
    async def test_malformed_token(self, settle) -> None:
        with pytest.raises(MalformedTokenError):
            await settle("definitely.not.a-jwt")

    @pytest.mark.asyncio
    async def test_missing_claim_is_rejected_before_any_network_call(
        self, settle, router, peer_signer, transfer_payload
    ) -> None:
        token = peer_signer.sign(dataclasses.replace(transfer_payload, sender_name=""))

        with pytest.raises(PayloadValidationError, match="senderName"):
            await settle(token)
        assert router.requests == []

    @pytest.mark.asyncio
    async def test_unknown_sending_bank(
        self, settle, router, registry_banks, peer_signer, transfer_payload
    ) -> None:
        router.json("GET", f"{REGISTRY_URL}/banks", registry_banks)
        token = peer_signer.sign(dataclasses.replace(transfer_payload, account_from="zz9000999"))

        with pytest.raises(UnknownSenderBankError) as exc_info:
            await settle(token)
        assert exc_info.value.message == "Unknown sending bank"
        assert exc_info.value.code == "UNKNOWN_SENDER_BANK"

    @pytest.mark.asyncio
    async def test_foreign_key_is_rejected_and_nothing_changes(
        self, settle, add_account, session_factory, rogue_signer, transfer_payload
    ) -> None:
        await add_account(balance=500)

        with pytest.raises(SignatureError):
            await settle(rogue_signer.sign(transfer_payload))

        assert await balance_of(session_factory, "bf5000111") == 500
        assert await transaction_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_unknown_destination_account(
        self, settle, session_factory, peer_signer, transfer_payload
    ) -> None:
        with pytest.raises(AccountNotFoundError):
            await settle(peer_signer.sign(transfer_payload))
        assert await transaction_count(session_factory) == 0
