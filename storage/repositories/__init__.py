"""
Repositories Package - data access layer.
"""

from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import (
    DatabaseUnavailableError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RepositoryException,
)
from storage.repositories.whale_repo import NotificationRepository, WhaleTransactionRepository

__all__ = [
    "BaseRepository",
    "DatabaseUnavailableError",
    "DuplicateRecordError",
    "IntegrityError",
    "QueryError",
    "RepositoryException",
    "NotificationRepository",
    "WhaleTransactionRepository",
]
