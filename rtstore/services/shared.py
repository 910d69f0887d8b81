"""
Shared helpers and configuration for storage services.
"""

from __future__ import annotations

from functools import wraps
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError

import rtstore.config as config
from rtstore.db import is_serialization_failure
from rtstore.errors import SerializationConflict, ValidationIssue
from rtstore.validators import (
    validate_required_text as _validate_required_text,
    validate_optional_text as _validate_optional_text,
    validate_string as _validate_string,
    validate_type_id as _validate_type_id,
    coerce_uuid as _coerce_uuid,
    coerce_price as _coerce_price,
)

# =============================================================================
# Configuration
# =============================================================================

logger = config.logger

MAX_STRING_LENGTH = config.MAX_STRING_LENGTH
MAX_KEY_LENGTH = config.MAX_KEY_LENGTH
MAX_LONG_TEXT_LENGTH = config.MAX_LONG_TEXT_LENGTH

T = TypeVar("T")


# =============================================================================
# Helper Functions
# =============================================================================

def _log_validation_issue(operation: str, exc: ValidationIssue) -> None:
    payload = {
        "operation": operation,
        "field": exc.field,
        "error_type": exc.error_type,
        "error_code": exc.error_code,
        "detail": str(exc),
    }
    logger.info("storage_validation_error", extra=payload)


def _log_serialization_conflict(operation: str, exc: BaseException) -> None:
    payload = {
        "operation": operation,
        "detail": str(getattr(exc, "orig", exc)),
    }
    logger.warning("storage_serialization_conflict", extra=payload)


def storage_operation(fn: Callable[..., T]) -> Callable[..., T]:
    """Log and translate failures of a public storage operation.

    Validation issues propagate unchanged. Engine errors caused by a concurrent
    transaction become SerializationConflict so callers can retry the whole
    transaction; every other engine error propagates unchanged.
    """

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ValidationIssue as exc:
            _log_validation_issue(fn.__name__, exc)
            raise
        except DBAPIError as exc:
            if not is_serialization_failure(exc):
                raise
            _log_serialization_conflict(fn.__name__, exc)
            raise SerializationConflict(
                f"{fn.__name__} aborted by a concurrent transaction; retry the transaction",
                operation=fn.__name__,
            ) from exc
    return wrapper


__all__ = [
    "logger",
    "MAX_STRING_LENGTH",
    "MAX_KEY_LENGTH",
    "MAX_LONG_TEXT_LENGTH",
    "storage_operation",
    "_validate_required_text",
    "_validate_optional_text",
    "_validate_string",
    "_validate_type_id",
    "_coerce_uuid",
    "_coerce_price",
]
