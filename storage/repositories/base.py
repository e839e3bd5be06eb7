"""
Base Repository.

============================================================
PURPOSE
============================================================
Shared plumbing for the whale repositories:
- the session is injected; repositories never commit
- SQLAlchemy errors come back out as repository exceptions

============================================================
"""

import logging
from abc import ABC
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError as SQLAlchemyIntegrityError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from storage.models.base import Base
from storage.repositories.exceptions import (
    DatabaseUnavailableError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RepositoryException,
)


T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """
    Session-scoped access to one ORM model.

    Subclasses pass their model and a name used in errors and logs:

        class WhaleTransactionRepository(BaseRepository[WhaleTransactionRecord]):
            def __init__(self, session):
                super().__init__(session, WhaleTransactionRecord, "WhaleTransactionRepository")
    """

    def __init__(self, session: Session, model_class: Type[T], repository_name: str) -> None:
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> Session:
        return self._session

    @property
    def repository_name(self) -> str:
        return self._repository_name

    # ---------------------------------------------------------
    # Error translation
    # ---------------------------------------------------------

    def _translate(
        self,
        error: SQLAlchemyError,
        operation: str,
        context: Optional[dict] = None,
    ) -> RepositoryException:
        """Map a SQLAlchemy error to the repository exception to raise."""
        context = context or {}

        if isinstance(error, SQLAlchemyIntegrityError):
            text = str(error.orig if error.orig is not None else error).lower()
            if "unique" in text or "duplicate" in text:
                self._logger.info(f"[{self._repository_name}] Duplicate on {operation}: {context}")
                return DuplicateRecordError(
                    self._repository_name,
                    context.get("field", "id"),
                    context.get("value", "unknown"),
                )
            self._logger.warning(f"[{self._repository_name}] Constraint failed on {operation}: {text}")
            return IntegrityError(self._repository_name, operation, text, dict(context))

        self._logger.error(
            f"[{self._repository_name}] {operation} failed: {error}",
            exc_info=True,
        )
        if isinstance(error, OperationalError):
            return DatabaseUnavailableError(self._repository_name, operation, str(error))
        return QueryError(self._repository_name, operation, str(error))

    # ---------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------

    def _add(self, entity: T, context: Optional[dict] = None) -> T:
        """Add and flush so constraint violations surface here."""
        try:
            self._session.add(entity)
            self._session.flush()
        except SQLAlchemyError as e:
            raise self._translate(e, "add", context) from e
        return entity

    def _get_by_id(self, record_id: Any) -> Optional[T]:
        try:
            return self._session.get(self._model_class, record_id)
        except SQLAlchemyError as e:
            raise self._translate(e, "get", {"id": str(record_id)}) from e

    def _count(self) -> int:
        try:
            return self._session.execute(
                select(func.count()).select_from(self._model_class)
            ).scalar_one()
        except SQLAlchemyError as e:
            raise self._translate(e, "count") from e
