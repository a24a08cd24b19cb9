"""Settlement building blocks: routing, signing, verification, conversion.

    - BankDirectory:      registry-backed routing-prefix lookup
    - MessageSigner:      RS256 signing of outbound transfer payloads + JWKS
    - MessageVerifier:    peer JWKS fetch (TTL cache) + signature check
    - CurrencyConverter:  rate-source backed minor-unit conversion
"""

from interbank_settlement.settlement.currency import CurrencyConverter, HttpRateSource
from interbank_settlement.settlement.directory import BankDirectory
from interbank_settlement.settlement.payload_schema import (
    TRANSFER_PAYLOAD_SCHEMA,
    validate_transfer_claims,
)
from interbank_settlement.settlement.signing import MessageSigner
from interbank_settlement.settlement.verification import MessageVerifier

__all__ = [
    "BankDirectory",
    "CurrencyConverter",
    "HttpRateSource",
    "MessageSigner",
    "MessageVerifier",
    "TRANSFER_PAYLOAD_SCHEMA",
    "validate_transfer_claims",
]
