"""
Shared error types for rtstore services.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class SerializationConflict(RuntimeError):
    """Raised when a concurrent transaction forced this one to abort.

    The whole calling transaction must be re-run; nothing was committed.
    """

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation
