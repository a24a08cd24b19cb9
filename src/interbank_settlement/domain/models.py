"""Value objects and capability protocols shared across the settlement engine.

Plain dataclasses and Protocols (structural subtyping) so the domain layer has
no imports from httpx, PyJWT or SQLAlchemy.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

ROUTING_PREFIX_LENGTH = 3


def routing_prefix(account_number: str) -> str:
    """Return the bank routing prefix encoded in an account number."""
    return account_number[:ROUTING_PREFIX_LENGTH]


@dataclass(frozen=True)
class Bank:
    """A partner bank as listed by the central registry.

    Attributes:
        bank_prefix: Unique 3-character routing key.
        name: Display name.
        transaction_url: The bank's inbound b2b settlement endpoint.
        jwks_url: Where the bank publishes its verification keyset.
        owners: Free-form owner string from the registry.
    """

    bank_prefix: str
    name: str
    transaction_url: str
    jwks_url: str
    owners: str = ""

    @classmethod
    def from_registry(cls, item: dict[str, Any]) -> Bank:
        """Build a Bank from one element of the registry's /banks array.

        Raises:
            KeyError, TypeError: If a required key is absent or the item is not a dict.
        """
        owners = item.get("owners", "")
        return cls(
            bank_prefix=str(item["bankPrefix"]),
            name=str(item["name"]),
            transaction_url=str(item["transactionUrl"]),
            jwks_url=str(item["jwksUrl"]),
            owners=owners if isinstance(owners, str) else ",".join(map(str, owners)),
        )


@dataclass(frozen=True)
class TransferPayload:
    """The claims carried by a signed transfer token between banks."""

    account_from: str
    account_to: str
    amount: int
    currency: str
    explanation: str
    sender_name: str

    @property
    def sender_prefix(self) -> str:
        return routing_prefix(self.account_from)

    @property
    def destination_prefix(self) -> str:
        return routing_prefix(self.account_to)

    def to_claims(self) -> dict[str, Any]:
        """Serialize to the camelCase wire claims peers expect."""
        return {
            "accountFrom": self.account_from,
            "accountTo": self.account_to,
            "amount": self.amount,
            "currency": self.currency,
            "explanation": self.explanation,
            "senderName": self.sender_name,
        }

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> TransferPayload:
        """Build from already-validated wire claims."""
        return cls(
            account_from=claims["accountFrom"],
            account_to=claims["accountTo"],
            amount=claims["amount"],
            currency=claims["currency"],
            explanation=claims["explanation"],
            sender_name=claims["senderName"],
        )


@dataclass(frozen=True)
class InboundSettlementResult:
    """Outcome of a successfully applied inbound transfer."""

    receiver_name: str
    credited_amount: int
    converted_amount: int
    transaction_id: str


@runtime_checkable
class RateSource(Protocol):
    """Capability that quotes an exchange rate between two currencies.

    Concrete implementations:
        - settlement/currency.py  HttpRateSource (remote JSON feed)
    """

    async def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Return how many units of `to_currency` one unit of `from_currency` buys.

        Raises:
            RateUnavailableError: If no rate could be obtained.
        """
        ...
