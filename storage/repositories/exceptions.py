"""
Repository Layer Exceptions.

Repositories translate SQLAlchemy errors into these. WhaleSink tells
a duplicate (expected under replay) apart from a real failure by
catching DuplicateRecordError before RepositoryException.
"""

from typing import Any, Optional


class RepositoryException(Exception):
    """Base exception for all repository operations."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.repository_name = repository_name
        self.operation = operation
        self.message = message
        self.details = details or {}
        super().__init__(f"[{repository_name}] {operation}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "repository_name": self.repository_name,
            "operation": self.operation,
            "message": self.message,
            "details": self.details,
        }


class DuplicateRecordError(RepositoryException):
    """The primary key (or a unique column) already holds this value."""

    def __init__(self, repository_name: str, constraint_field: str, value: Any) -> None:
        super().__init__(
            repository_name,
            "insert",
            f"{constraint_field}={value} already stored",
            {"field": constraint_field, "value": str(value)},
        )
        self.constraint_field = constraint_field
        self.value = value


class IntegrityError(RepositoryException):
    """Constraint violation other than a duplicate, e.g. a missing foreign key."""


class DatabaseUnavailableError(RepositoryException):
    """The database could not be reached or is locked."""

    def __init__(self, repository_name: str, operation: str, original_error: str) -> None:
        super().__init__(
            repository_name, operation, f"database unavailable: {original_error}",
            {"original_error": original_error},
        )


class QueryError(RepositoryException):
    """Any other failed statement."""

    def __init__(self, repository_name: str, operation: str, original_error: str) -> None:
        super().__init__(
            repository_name, operation, f"query failed: {original_error}",
            {"original_error": original_error},
        )
