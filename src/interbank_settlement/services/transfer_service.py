"""Transfer Service — accepts a customer's outbound transfer request.

The source account is debited and a Pending record written in one unit of
work; the TransactionProcessor settles the record with the peer bank later.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from interbank_settlement.domain.enums import (
    EventType,
    TransactionDirection,
    TransactionStatus,
)
from interbank_settlement.domain.exceptions import (
    AccountNotFoundError,
    BankNotFoundError,
    ForbiddenError,
    InsufficientFundsError,
    PayloadValidationError,
    UpstreamError,
)
from interbank_settlement.domain.models import routing_prefix
from interbank_settlement.infrastructure.database.orm_models import Transaction
from interbank_settlement.infrastructure.database.repositories import (
    AccountRepository,
    EventRepository,
    TransactionRepository,
)
from interbank_settlement.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from interbank_settlement.settlement.directory import BankDirectory

logger = get_logger(__name__)


class TransferService:
    """Creates outbound transfers on behalf of an authenticated user."""

    def __init__(self, session: AsyncSession, directory: BankDirectory) -> None:
        self._session = session
        self._directory = directory
        self._account_repo = AccountRepository(session)
        self._transaction_repo = TransactionRepository(session)
        self._event_repo = EventRepository(session)

    async def create_transfer(
        self,
        user_id: str,
        account_from: str,
        account_to: str,
        amount: int,
        explanation: str,
    ) -> Transaction:
        """Debit `account_from` and queue a Pending transfer to `account_to`.

        Raises:
            AccountNotFoundError: Source account does not exist.
            ForbiddenError: Source account belongs to another user.
            PayloadValidationError: Amount is not positive.
            InsufficientFundsError: Amount exceeds the balance.
            BankNotFoundError: No bank owns the destination prefix.
        """
        account = await self._account_repo.get_by_number(account_from)
        if account is None:
            raise AccountNotFoundError(account_from, message="Nonexistent accountFrom")
        if account.user_id != user_id:
            raise ForbiddenError()
        if amount <= 0:
            raise PayloadValidationError("Invalid amount", field="amount")
        if account.balance < amount:
            raise InsufficientFundsError(account_from)

        destination_prefix = routing_prefix(account_to)
        status_details = ""
        try:
            await self._directory.resolve(destination_prefix)
        except BankNotFoundError as exc:
            raise BankNotFoundError(
                destination_prefix, message="Destination bank not found"
            ) from exc
        except UpstreamError as exc:
            # The processor resolves again on every attempt.
            status_details = f"Contacting central bank failed: {exc.message}"
            logger.warning(
                "transfer.registry_unavailable",
                bank_prefix=destination_prefix,
                error=exc.message,
            )

        transaction = await self._transaction_repo.create(
            Transaction(
                direction=TransactionDirection.OUTBOUND.value,
                account_from=account_from,
                account_to=account_to,
                sender_name=account.owner_name,
                amount=amount,
                currency=account.currency,
                explanation=explanation,
                status=TransactionStatus.PENDING.value,
                status_details=status_details,
            )
        )
        await self._account_repo.debit(account, amount)
        await self._event_repo.record(
            transaction_id=transaction.id,
            event_type=EventType.TRANSACTION_CREATED,
            old_status=None,
            new_status=TransactionStatus.PENDING,
            metadata={"status_details": status_details} if status_details else None,
        )

        logger.info(
            "transfer.created",
            transaction_id=str(transaction.id),
            account_from=account_from,
            account_to=account_to,
            amount=amount,
            currency=account.currency,
        )
        return transaction
