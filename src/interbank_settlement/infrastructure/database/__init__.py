"""Database infrastructure: engine, ORM models, and repositories."""

from interbank_settlement.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from interbank_settlement.infrastructure.database.orm_models import (
    Account,
    Base,
    BankRecord,
    Transaction,
    TransactionEvent,
    UserSession,
)
from interbank_settlement.infrastructure.database.repositories import (
    AccountRepository,
    BankRepository,
    EventRepository,
    SessionRepository,
    TransactionRepository,
)

__all__ = [
    "Account",
    "Base",
    "BankRecord",
    "Transaction",
    "TransactionEvent",
    "UserSession",
    "AccountRepository",
    "BankRepository",
    "EventRepository",
    "SessionRepository",
    "TransactionRepository",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "close_db",
]
