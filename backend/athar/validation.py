# Overview: Request payload checks driven by SQLAlchemy column metadata plus per-route allowlists.

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text


# Ceilings for a single donation
MAX_DONATION_AMOUNT = 10_000_000
MAX_BOXES_PER_DONATION = 100_000

_PLAIN_INT = re.compile(r"^[+-]?\d+$")


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which model columns a route lets clients write, and which of those a
    create request must carry.
    """
    writable_fields: frozenset[str] | set[str]
    required_on_create: frozenset[str] | set[str] = field(default_factory=frozenset)


def _to_int(key: str, value: Any) -> int:
    """Ints and digit-only strings. Floats, bools, '12.5' and '1e3' are refused."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str) and _PLAIN_INT.match(value.strip()):
        return int(value.strip())
    raise ValidationError(f"{key} must be an integer")


def _to_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not math.isfinite(number):
        raise ValidationError(f"{key} must be a finite number")
    return number


def _to_bool(key: str, value: Any) -> bool:
    return value if isinstance(value, bool) else bool(value)


def _to_text(key: str, value: Any) -> str:
    return str(value).strip()


_COERCERS = (
    (Integer, _to_int),
    (Float, _to_float),
    (Boolean, _to_bool),
    ((String, Text), _to_text),
)


def _coerce(column, value: Any):
    for column_type, coerce in _COERCERS:
        if isinstance(column.type, column_type):
            return coerce(column.key, value)
    return value


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Clean a request body against the model's columns and the policy.

    - keys outside policy.writable_fields are rejected, never silently dropped
    - values are coerced to the column type (Integer, Float, Boolean, String)
    - blank values become None where the column is nullable
    - String(n) lengths are enforced
    - with partial=False every policy.required_on_create key must be present
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(set(policy.required_on_create) - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {column.key: column for column in model.__mapper__.columns}

    cleaned: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")

        if _is_blank(raw):
            if not column.nullable:
                raise ValidationError(f"{key} cannot be blank")
            cleaned[key] = None
            continue

        value = _coerce(column, raw)
        if isinstance(value, str):
            max_length = getattr(column.type, "length", None)
            if max_length and len(value) > max_length:
                raise ValidationError(f"{key} exceeds max length {max_length}")
        cleaned[key] = value

    return cleaned


def enforce_rules_donation(patch: dict) -> None:
    """
    amount may be omitted when boxes > 0; the lifecycle service prices it.
    """
    boxes = patch.get("boxes")
    if boxes is not None and not 0 <= boxes <= MAX_BOXES_PER_DONATION:
        raise ValidationError(f"boxes must be between 0 and {MAX_BOXES_PER_DONATION}")

    amount = patch.get("amount")
    if amount is None:
        if not boxes:
            raise ValidationError("amount is required when boxes is not given")
    elif not 0 < amount <= MAX_DONATION_AMOUNT:
        raise ValidationError(f"amount must be between 1 and {MAX_DONATION_AMOUNT}")


def enforce_rules_stock_purchase(patch: dict) -> None:
    # cost_per_unit of 0 or absent keeps the item's current price
    quantity = patch.get("quantity")
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0 for a purchase")
    if (patch.get("cost_per_unit") or 0) < 0:
        raise ValidationError("cost_per_unit must be >= 0")


def enforce_rules_stock_adjustment(patch: dict) -> None:
    if not patch.get("quantity"):
        raise ValidationError("quantity must be non-zero for an adjustment")


def parse_positive_int(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    number = _to_int(field, value)
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return number


def parse_non_negative_float(value: Any, field: str) -> float:
    if value is None:
        raise ValidationError(f"{field} is required")
    number = _to_float(field, value)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0")
    return number


def json_object(body: Any) -> dict:
    """Request body as a dict; a missing body is {} and any other JSON type is rejected."""
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON payload")
    return body
