"""Transfer payload schema — validates inbound token claims before any trust.

The schema is declared once and checked with a Draft 7 validator right after
the token is decoded. Validation stops at the first violation in field order
and reports which field failed and what type was expected, e.g.:

    Missing parameter amount in JWT
    amount is of type string but expected it to be type number in JWT
"""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator

from interbank_settlement.domain.exceptions import PayloadValidationError
from interbank_settlement.domain.models import ROUTING_PREFIX_LENGTH, TransferPayload

TRANSFER_PAYLOAD_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "TransferPayload",
    "type": "object",
    "properties": {
        "accountFrom": {"type": "string", "minLength": ROUTING_PREFIX_LENGTH},
        "accountTo": {"type": "string", "minLength": ROUTING_PREFIX_LENGTH},
        "amount": {"type": "number", "exclusiveMinimum": 0, "multipleOf": 1},
        "currency": {"type": "string", "minLength": 1},
        "explanation": {"type": "string", "minLength": 1},
        "senderName": {"type": "string", "minLength": 1},
    },
    "required": [
        "accountFrom",
        "accountTo",
        "amount",
        "currency",
        "explanation",
        "senderName",
    ],
}

FIELD_ORDER: tuple[str, ...] = tuple(TRANSFER_PAYLOAD_SCHEMA["required"])

_validator = Draft7Validator(TRANSFER_PAYLOAD_SCHEMA)


def _json_type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _field_rank(error) -> tuple[int, int]:  # noqa: ANN001
    field = error.path[0] if error.path else None
    position = FIELD_ORDER.index(field) if field in FIELD_ORDER else len(FIELD_ORDER)
    # A type mismatch explains the field better than any constraint on it.
    return position, 0 if error.validator == "type" else 1


def validate_transfer_claims(claims: Any) -> TransferPayload:
    """Validate decoded token claims and return a typed payload.

    Raises:
        PayloadValidationError: On the first missing or mistyped field.
    """
    if not isinstance(claims, dict):
        raise PayloadValidationError("JWT payload must be a JSON object")

    for field in FIELD_ORDER:
        if field not in claims or claims[field] is None:
            raise PayloadValidationError(f"Missing parameter {field} in JWT", field=field)

    errors = sorted(_validator.iter_errors(claims), key=_field_rank)
    if errors:
        first = errors[0]
        field = str(first.path[0]) if first.path else None
        if first.validator == "type":
            raise PayloadValidationError(
                f"{field} is of type {_json_type_name(first.instance)} "
                f"but expected it to be type {first.validator_value} in JWT",
                field=field,
            )
        raise PayloadValidationError(f"{field} is invalid in JWT: {first.message}", field=field)

    payload = dict(claims)
    payload["amount"] = int(payload["amount"])
    return TransferPayload.from_claims(payload)
