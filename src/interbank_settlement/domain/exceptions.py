"""Domain exceptions for the settlement node.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware,
or recorded into a transaction's status details by the background processor.
"""


class SettlementError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "SETTLEMENT_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- State Machine Errors ---


class InvalidStateTransitionError(SettlementError):
    """Raised when an attempted state transition is not allowed.

    Example: Completed -> Pending (Completed is terminal).
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {current_state} -> {attempted_event}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


class ExpiryError(SettlementError):
    """Raised when a pending transaction has aged past its settlement window."""

    def __init__(self, transaction_id: str) -> None:
        super().__init__(message="Expired", code="TRANSACTION_EXPIRED")
        self.transaction_id = transaction_id


# --- Validation Errors ---


class PayloadValidationError(SettlementError):
    """Raised when a request or token payload is missing or mistyping a field."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


class InsufficientFundsError(SettlementError):
    """Raised when the source account cannot cover a transfer."""

    def __init__(self, account_number: str) -> None:
        super().__init__(message="Insufficient funds", code="INSUFFICIENT_FUNDS")
        self.account_number = account_number


# --- Auth Errors ---


class AuthError(SettlementError):
    """Raised when the session token is missing or unknown."""

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message=message, code="UNAUTHORIZED")


class MalformedAuthHeaderError(SettlementError):
    """Raised when the Authorization header is not `<scheme> <token>`."""

    def __init__(self) -> None:
        super().__init__(message="Invalid authorization format", code="BAD_AUTH_FORMAT")


class ForbiddenError(SettlementError):
    """Raised when a user acts on an account they do not own."""

    def __init__(self, message: str = "Forbidden accountFrom") -> None:
        super().__init__(message=message, code="FORBIDDEN")


# --- Lookup Errors ---


class NotFoundError(SettlementError):
    """Base exception for unknown banks and accounts."""


class BankNotFoundError(NotFoundError):
    """Raised when a routing prefix is absent even after a directory refresh."""

    def __init__(self, bank_prefix: str, message: str | None = None) -> None:
        super().__init__(
            message=message or f"Bank not found: {bank_prefix}",
            code="BANK_NOT_FOUND",
        )
        self.bank_prefix = bank_prefix


class UnknownSenderBankError(BankNotFoundError):
    """Raised when an inbound token names a sending bank the registry does not know."""

    def __init__(self, bank_prefix: str) -> None:
        super().__init__(bank_prefix, message="Unknown sending bank")
        self.code = "UNKNOWN_SENDER_BANK"


class AccountNotFoundError(NotFoundError):
    """Raised when an account number does not exist at this bank."""

    def __init__(self, account_number: str, message: str | None = None) -> None:
        super().__init__(
            message=message or f"Account not found: {account_number}",
            code="ACCOUNT_NOT_FOUND",
        )
        self.account_number = account_number


# --- Token Errors ---


class MalformedTokenError(SettlementError):
    """Raised when an inbound token cannot even be decoded."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="MALFORMED_TOKEN")


class SignatureError(SettlementError):
    """Raised on any signature verification failure.

    Wrong key, unknown kid, tampered payload and broken encoding are all the
    same failure to callers: the token is not trusted at all.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            message=f"Signature verification failed: {message}",
            code="SIGNATURE_ERROR",
        )


# --- Upstream Errors ---


class UpstreamError(SettlementError):
    """Raised when the central registry or a peer service fails or errors."""

    def __init__(self, message: str, upstream: str = "", code: str = "UPSTREAM_ERROR") -> None:
        super().__init__(message=message, code=code)
        self.upstream = upstream


class RateUnavailableError(UpstreamError):
    """Raised when no exchange rate could be obtained.

    Never treated as a rate of 1.
    """

    def __init__(self, from_currency: str, to_currency: str, reason: str) -> None:
        super().__init__(
            message=f"Exchange rate {from_currency}->{to_currency} unavailable: {reason}",
            upstream="rates",
            code="RATE_UNAVAILABLE",
        )
        self.from_currency = from_currency
        self.to_currency = to_currency


# --- Idempotency Errors ---


class DuplicateOperationError(SettlementError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )
