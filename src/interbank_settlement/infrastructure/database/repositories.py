"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update

from interbank_settlement.domain.enums import TransactionDirection
from interbank_settlement.domain.models import Bank
from interbank_settlement.infrastructure.database.orm_models import (
    Account,
    BankRecord,
    Transaction,
    TransactionEvent,
    UserSession,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from interbank_settlement.domain.enums import EventType, TransactionStatus


class TransactionRepository:
    """Data access for transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, transaction: Transaction) -> Transaction:
        """Insert a new transaction."""
        self._session.add(transaction)
        await self._session.flush()
        return transaction

    async def get_by_id(self, transaction_id: uuid.UUID) -> Transaction | None:
        """Fetch a transaction by its UUID."""
        result = await self._session.execute(
            select(Transaction).where(Transaction.id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def get_ids_by_status(
        self,
        status: TransactionStatus,
        direction: TransactionDirection = TransactionDirection.OUTBOUND,
    ) -> list[uuid.UUID]:
        """Fetch ids of all transactions in a status, oldest first."""
        result = await self._session.execute(
            select(Transaction.id)
            .where(Transaction.status == status.value, Transaction.direction == direction.value)
            .order_by(Transaction.created_at.asc())
        )
        return list(result.scalars().all())

    async def compare_and_set_status(
        self,
        transaction_id: uuid.UUID,
        expected: TransactionStatus,
        new_status: TransactionStatus,
        status_details: str | None = None,
        receiver_name: str | None = None,
    ) -> bool:
        """Atomically move a transaction from `expected` to `new_status`.

        Returns False (and changes nothing) when the row is no longer in
        `expected`, which is how a second worker learns it lost the claim.
        Call AFTER state machine validation.
        """
        values: dict = {"status": new_status.value, "updated_at": datetime.now(UTC)}
        if status_details is not None:
            values["status_details"] = status_details
        if receiver_name is not None:
            values["receiver_name"] = receiver_name

        result = await self._session.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        transaction_id: uuid.UUID,
        event_type: EventType,
        old_status: TransactionStatus | None,
        new_status: TransactionStatus,
        metadata: dict | None = None,
    ) -> TransactionEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = TransactionEvent(
            transaction_id=transaction_id,
            event_type=event_type.value,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_transaction(self, transaction_id: uuid.UUID) -> list[TransactionEvent]:
        """Fetch all events for a transaction in chronological order."""
        result = await self._session.execute(
            select(TransactionEvent)
            .where(TransactionEvent.transaction_id == transaction_id)
            .order_by(TransactionEvent.created_at.asc())
        )
        return list(result.scalars().all())


class BankRepository:
    """Data access for the persisted registry snapshot."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def replace_all(self, banks: list[Bank]) -> None:
        """Swap the whole snapshot. Readers see old or new rows once committed."""
        await self._session.execute(delete(BankRecord))
        self._session.add_all(
            BankRecord(
                bank_prefix=bank.bank_prefix,
                name=bank.name,
                transaction_url=bank.transaction_url,
                jwks_url=bank.jwks_url,
                owners=bank.owners,
            )
            for bank in banks
        )
        await self._session.flush()

    async def list_all(self) -> list[Bank]:
        result = await self._session.execute(select(BankRecord))
        return [
            Bank(
                bank_prefix=row.bank_prefix,
                name=row.name,
                transaction_url=row.transaction_url,
                jwks_url=row.jwks_url,
                owners=row.owners,
            )
            for row in result.scalars().all()
        ]


class AccountRepository:
    """Read and balance access to accounts managed elsewhere."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_number(self, number: str) -> Account | None:
        result = await self._session.execute(select(Account).where(Account.number == number))
        return result.scalar_one_or_none()

    async def credit(self, account: Account, amount: int) -> Account:
        account.balance += amount
        await self._session.flush()
        return account

    async def debit(self, account: Account, amount: int) -> Account:
        account.balance -= amount
        await self._session.flush()
        return account


class SessionRepository:
    """Resolves opaque session tokens to user ids."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_user_id(self, token: str) -> str | None:
        result = await self._session.execute(
            select(UserSession.user_id).where(UserSession.token == token)
        )
        return result.scalar_one_or_none()
