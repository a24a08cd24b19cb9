"""SQLAlchemy 2.0 ORM models for the settlement node.

Tables:
    1. transactions        — Outbound and inbound transfers (never deleted).
    2. transaction_events  — Append-only audit log of every status change.
    3. banks               — Last published snapshot of the central registry.
    4. accounts            — Customer accounts (owned by account management; read + balance only).
    5. sessions            — Session tokens (owned by auth; read only).

Design decisions:
    - UUID primary keys for transactions (opaque, no sequential leakage).
    - Integer minor units for money; no floats anywhere in storage.
    - CHECK constraint on status so the database rejects unknown values.
    - Generic Uuid/JSON types so the same models run on PostgreSQL and SQLite.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = datetime.now(UTC)


# ---------------------------------------------------------------------------
# 1. transactions
# ---------------------------------------------------------------------------
class Transaction(Base):
    """A transfer between an account here and an account at another bank."""

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    direction: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="outbound",
        comment="outbound: we send to a peer, inbound: a peer credited us",
    )

    # --- Parties ---
    account_from: Mapped[str] = mapped_column(String(64), nullable=False)
    account_to: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_name: Mapped[str] = mapped_column(String(255), nullable=False)
    receiver_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        default=None,
        comment="Reported by the destination bank on completion",
    )

    # --- Financials ---
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Amount in minor units of `currency`",
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    explanation: Mapped[str] = mapped_column(Text, nullable=False)

    # --- Status (guarded by TransactionStateMachine) ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="Pending",
    )
    status_details: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    events: Mapped[list[TransactionEvent]] = relationship(
        "TransactionEvent",
        back_populates="transaction",
        order_by="TransactionEvent.created_at.asc()",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('Pending', 'In Progress', 'Completed', 'Failed')",
            name="ck_transaction_valid_status",
        ),
        CheckConstraint(
            "direction IN ('outbound', 'inbound')",
            name="ck_transaction_valid_direction",
        ),
        CheckConstraint("amount > 0", name="ck_transaction_positive_amount"),
        Index("idx_transaction_status", "status"),
        Index("idx_transaction_account_from", "account_from"),
        Index("idx_transaction_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} {self.direction} status={self.status} "
            f"amount={self.amount} {self.currency}>"
        )


# ---------------------------------------------------------------------------
# 2. transaction_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class TransactionEvent(Base):
    """Immutable audit record of a single status change.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "transaction_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("transactions.id"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
        comment="Status details, peer response, error message",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    transaction: Mapped[Transaction] = relationship(
        "Transaction",
        back_populates="events",
    )

    __table_args__ = (
        Index("idx_event_transaction", "transaction_id"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionEvent id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )


# ---------------------------------------------------------------------------
# 3. banks
# ---------------------------------------------------------------------------
class BankRecord(Base):
    """One row of the persisted central registry snapshot."""

    __tablename__ = "banks"

    bank_prefix: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    transaction_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    jwks_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    owners: Mapped[str] = mapped_column(String(255), nullable=False, default="")


# ---------------------------------------------------------------------------
# 4. accounts
# ---------------------------------------------------------------------------
class Account(Base):
    """A customer account held at this bank."""

    __tablename__ = "accounts"

    number: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    owner_name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (Index("idx_account_user", "user_id"),)

    def __repr__(self) -> str:
        return f"<Account number={self.number} balance={self.balance} {self.currency}>"


# ---------------------------------------------------------------------------
# 5. sessions
# ---------------------------------------------------------------------------
class UserSession(Base):
    """An opaque session token issued by the auth service."""

    __tablename__ = "sessions"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )


event.listen(Transaction, "before_update", _set_updated_at)
