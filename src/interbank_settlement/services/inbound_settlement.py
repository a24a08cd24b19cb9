"""Inbound Settlement Handler — applies a transfer another bank sent us.

Order (each step short-circuits; nothing is written before step 4 passes):
    1. decode the token without verifying it
    2. validate the claims against the transfer payload schema
    3. resolve the sending bank from accountFrom's routing prefix
    4. verify the signature against that bank's published keys
    5. find the destination account
    6. convert the amount into the account's currency
    7. credit the account and write an inbound Completed record

The caller owns the unit of work: the credit and the ledger record are
flushed here and committed together by the request session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from interbank_settlement.domain.enums import (
    EventType,
    TransactionDirection,
    TransactionStatus,
)
from interbank_settlement.domain.exceptions import (
    AccountNotFoundError,
    BankNotFoundError,
    UnknownSenderBankError,
)
from interbank_settlement.domain.models import InboundSettlementResult
from interbank_settlement.infrastructure.database.orm_models import Transaction
from interbank_settlement.infrastructure.database.repositories import (
    AccountRepository,
    EventRepository,
    TransactionRepository,
)
from interbank_settlement.logging_config import get_logger
from interbank_settlement.services.transaction_processor import FINISHED
from interbank_settlement.settlement.payload_schema import validate_transfer_claims

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from interbank_settlement.settlement.currency import CurrencyConverter
    from interbank_settlement.settlement.directory import BankDirectory
    from interbank_settlement.settlement.verification import MessageVerifier

logger = get_logger(__name__)


class InboundSettlementHandler:
    """Verifies and applies inbound transfer tokens."""

    def __init__(
        self,
        session: AsyncSession,
        directory: BankDirectory,
        verifier: MessageVerifier,
        converter: CurrencyConverter,
        credit_converted_amount: bool = False,
    ) -> None:
        self._session = session
        self._directory = directory
        self._verifier = verifier
        self._converter = converter
        self._credit_converted_amount = credit_converted_amount
        self._account_repo = AccountRepository(session)
        self._transaction_repo = TransactionRepository(session)
        self._event_repo = EventRepository(session)

    async def handle(self, token: Any) -> InboundSettlementResult:
        """Verify `token` and credit the destination account.

        Raises:
            MalformedTokenError: The token cannot be decoded at all.
            PayloadValidationError: A claim is missing or has the wrong type.
            UnknownSenderBankError: The sending bank is not in the registry.
            SignatureError: The token does not verify against the sender's keys.
            AccountNotFoundError: The destination account does not exist.
            UpstreamError: Registry, keyset or rate source is unreachable.
        """
        claims = self._verifier.decode_unverified(token)
        unverified = validate_transfer_claims(claims)

        try:
            sender = await self._directory.resolve(unverified.sender_prefix)
        except BankNotFoundError as exc:
            raise UnknownSenderBankError(unverified.sender_prefix) from exc

        verified_claims = await self._verifier.verify_from(token, sender.jwks_url)
        payload = validate_transfer_claims(verified_claims)

        account = await self._account_repo.get_by_number(payload.account_to)
        if account is None:
            raise AccountNotFoundError(payload.account_to, message="Account not found")

        converted = await self._converter.convert(
            payload.amount, payload.currency, account.currency
        )
        credited = converted if self._credit_converted_amount else payload.amount
        if credited != converted:
            logger.warning(
                "inbound.credit_amount_mismatch",
                account=account.number,
                amount=payload.amount,
                currency=payload.currency,
                converted_amount=converted,
                account_currency=account.currency,
            )

        await self._account_repo.credit(account, credited)
        transaction = await self._transaction_repo.create(
            Transaction(
                direction=TransactionDirection.INBOUND.value,
                account_from=payload.account_from,
                account_to=payload.account_to,
                sender_name=payload.sender_name,
                receiver_name=account.owner_name,
                amount=payload.amount,
                currency=payload.currency,
                explanation=payload.explanation,
                status=TransactionStatus.COMPLETED.value,
                status_details=FINISHED,
            )
        )
        await self._event_repo.record(
            transaction_id=transaction.id,
            event_type=EventType.INBOUND_CREDITED,
            old_status=None,
            new_status=TransactionStatus.COMPLETED,
            metadata={
                "sender_bank": sender.bank_prefix,
                "credited_amount": credited,
                "converted_amount": converted,
                "account_currency": account.currency,
            },
        )

        logger.info(
            "inbound.credited",
            transaction_id=str(transaction.id),
            sender_bank=sender.bank_prefix,
            account=account.number,
            credited_amount=credited,
        )
        return InboundSettlementResult(
            receiver_name=account.owner_name,
            credited_amount=credited,
            converted_amount=converted,
            transaction_id=str(transaction.id),
        )
