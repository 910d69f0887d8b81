"""
Shared validation helpers for rtstore services.
"""

from __future__ import annotations

import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from rtstore.errors import ValidationIssue

PRICE_QUANTUM = Decimal("0.0001")
# NUMERIC(18, 4) leaves 14 integer digits.
PRICE_LIMIT = Decimal(10) ** 14


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_string(value: str, field: str, max_len: int) -> None:
    """Any string, including empty and whitespace-only ones."""
    if value is None:
        raise ValidationIssue(f"{field} is required", field=field, error_type="required")
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_type_id(value: int, field: str = "type_id") -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationIssue(f"{field} must be an integer", field=field, error_type="invalid_type")
    if value < 0:
        raise ValidationIssue(f"{field} must be non-negative", field=field, error_type="out_of_range")


def coerce_uuid(value: Union[uuid.UUID, str], field: str = "uuid") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        try:
            return uuid.UUID(value)
        except ValueError as exc:
            raise ValidationIssue(f"{field} must be a valid UUID", field=field, error_type="invalid_uuid") from exc
    raise ValidationIssue(f"{field} is required", field=field, error_type="required")


def coerce_price(value: Union[Decimal, int, float, str, None], field: str = "price") -> Optional[Decimal]:
    """Normalize a price to a Decimal with four fractional digits."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationIssue(f"{field} must be numeric", field=field, error_type="invalid_type")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationIssue(f"{field} must be numeric", field=field, error_type="invalid_type") from exc
    if not amount.is_finite():
        raise ValidationIssue(f"{field} must be finite", field=field, error_type="out_of_range")
    try:
        amount = amount.quantize(PRICE_QUANTUM)
    except InvalidOperation as exc:
        raise ValidationIssue(f"{field} is out of range", field=field, error_type="out_of_range") from exc
    if abs(amount) >= PRICE_LIMIT:
        raise ValidationIssue(
            f"{field} exceeds 14 integer digits",
            field=field,
            error_type="out_of_range",
            error_code="price_too_large",
            data={"limit": str(PRICE_LIMIT)},
        )
    return amount
