"""Domain layer: pure business logic with zero framework dependencies."""

from interbank_settlement.domain.enums import (
    EventType,
    TransactionDirection,
    TransactionStatus,
)
from interbank_settlement.domain.exceptions import (
    AccountNotFoundError,
    BankNotFoundError,
    InvalidStateTransitionError,
    SettlementError,
    SignatureError,
    UpstreamError,
)
from interbank_settlement.domain.models import (
    Bank,
    InboundSettlementResult,
    RateSource,
    TransferPayload,
    routing_prefix,
)
from interbank_settlement.domain.state_machine import (
    TransactionStateMachine,
    validate_transition,
)

__all__ = [
    "EventType",
    "TransactionDirection",
    "TransactionStatus",
    "AccountNotFoundError",
    "BankNotFoundError",
    "InvalidStateTransitionError",
    "SettlementError",
    "SignatureError",
    "UpstreamError",
    "Bank",
    "InboundSettlementResult",
    "RateSource",
    "TransferPayload",
    "routing_prefix",
    "TransactionStateMachine",
    "validate_transition",
]
