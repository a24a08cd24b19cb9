"""Domain enumerations for the settlement node.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class TransactionStatus(enum.StrEnum):
    """Lifecycle states of a transaction.

    Values are the wire/storage strings shared with peer banks.
    Transitions are enforced by TransactionStateMachine, see
    domain/state_machine.py for the table.
    """

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionStatus.COMPLETED, TransactionStatus.FAILED)


class TransactionDirection(enum.StrEnum):
    """Which side of the transfer this node is on."""

    OUTBOUND = "outbound"
    INBOUND = "inbound"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the transaction_events table.

    Every status change produces exactly one event. The table is the
    append-only trail used when a peer disputes a settlement.
    """

    TRANSACTION_CREATED = "TRANSACTION_CREATED"
    TRANSACTION_CLAIMED = "TRANSACTION_CLAIMED"
    TRANSACTION_EXPIRED = "TRANSACTION_EXPIRED"
    TRANSACTION_REJECTED = "TRANSACTION_REJECTED"
    TRANSACTION_RELEASED = "TRANSACTION_RELEASED"
    TRANSACTION_COMPLETED = "TRANSACTION_COMPLETED"
    INBOUND_CREDITED = "INBOUND_CREDITED"
