import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from rtstore.db import is_serialization_failure
from rtstore.errors import SerializationConflict, ValidationIssue
from rtstore.services.shared import storage_operation


class _DriverError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def _operational(message, pgcode=None):
    return OperationalError("UPDATE article", {}, _DriverError(message, pgcode))


def test_serialization_sqlstates_detected():
    assert is_serialization_failure(_operational("could not serialize access", "40001"))
    assert is_serialization_failure(_operational("deadlock detected", "40P01"))
    assert is_serialization_failure(_operational("database is locked"))
    assert not is_serialization_failure(_operational("disk I/O error"))
    assert not is_serialization_failure(ValueError("nope"))


def test_storage_operation_translates_conflicts():
    @storage_operation
    def append_something():
        raise _operational("could not serialize access", "40001")

    with pytest.raises(SerializationConflict) as excinfo:
        append_something()
    assert excinfo.value.operation == "append_something"
    assert isinstance(excinfo.value.__cause__, OperationalError)


def test_storage_operation_passes_other_errors_through():
    @storage_operation
    def broken():
        raise IntegrityError("INSERT", {}, _DriverError("constraint failed", "23505"))

    with pytest.raises(IntegrityError):
        broken()


def test_storage_operation_reraises_validation_issues(caplog):
    @storage_operation
    def invalid():
        raise ValidationIssue("bad", field="value", error_type="required")

    with caplog.at_level("INFO", logger="rtstore"):
        with pytest.raises(ValidationIssue):
            invalid()
    assert any(record.getMessage() == "storage_validation_error" for record in caplog.records)
