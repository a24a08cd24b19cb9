"""Tests for transfer claim validation."""

from __future__ import annotations

import pytest

from interbank_settlement.domain.exceptions import PayloadValidationError
from interbank_settlement.domain.models import TransferPayload
from interbank_settlement.settlement.payload_schema import validate_transfer_claims


@pytest.fixture
def claims(transfer_payload: TransferPayload) -> dict:
    return transfer_payload.to_claims()


class TestValidClaims:
    def test_returns_typed_payload(self, claims: dict, transfer_payload) -> None:
        assert validate_transfer_claims(claims) == transfer_payload

    def test_whole_float_amount_becomes_int(self, claims: dict) -> None:
        claims["amount"] = 1000.0
        payload = validate_transfer_claims(claims)
        assert payload.amount == 1000
        assert isinstance(payload.amount, int)

    def test_extra_claims_are_ignored(self, claims: dict) -> None:
        claims["iat"] = 1700000000
        assert validate_transfer_claims(claims).amount == 1000


class TestMissingFields:
    @pytest.mark.parametrize(
        "field",
        ["accountFrom", "accountTo", "amount", "currency", "explanation", "senderName"],
    )
    def test_missing_field_is_named(self, claims: dict, field: str) -> None:
        del claims[field]
        with pytest.raises(PayloadValidationError) as exc_info:
            validate_transfer_claims(claims)
        assert exc_info.value.message == f"Missing parameter {field} in JWT"
        assert exc_info.value.field == field

    def test_first_missing_field_in_order_wins(self, claims: dict) -> None:
        del claims["senderName"]
        del claims["amount"]
        with pytest.raises(PayloadValidationError, match="Missing parameter amount"):
            validate_transfer_claims(claims)

    def test_non_object_payload(self) -> None:
        with pytest.raises(PayloadValidationError, match="JSON object"):
            validate_transfer_claims(["not", "an", "object"])


class TestWrongTypes:
    def test_string_amount(self, claims: dict) -> None:
        claims["amount"] = "1000"
        with pytest.raises(PayloadValidationError) as exc_info:
            validate_transfer_claims(claims)
        assert exc_info.value.message == (
            "amount is of type string but expected it to be type number in JWT"
        )

    def test_numeric_currency(self, claims: dict) -> None:
        claims["currency"] = 978
        with pytest.raises(PayloadValidationError, match="currency is of type number"):
            validate_transfer_claims(claims)

    def test_boolean_amount(self, claims: dict) -> None:
        claims["amount"] = True
        with pytest.raises(PayloadValidationError, match="amount is of type boolean"):
            validate_transfer_claims(claims)


class TestConstraints:
    @pytest.mark.parametrize("amount", [0, -5, 10.5])
    def test_amount_must_be_positive_whole_number(self, claims: dict, amount) -> None:
        claims["amount"] = amount
        with pytest.raises(PayloadValidationError, match="amount is invalid"):
            validate_transfer_claims(claims)

    def test_account_shorter_than_prefix(self, claims: dict) -> None:
        claims["accountFrom"] = "bf"
        with pytest.raises(PayloadValidationError, match="accountFrom is invalid"):
            validate_transfer_claims(claims)
