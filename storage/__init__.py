"""
Storage Package.

This package manages all data persistence.

Modules:
- database: Engine and session management
- models/: ORM models
- repositories/: Data access layer
- sink: Pipeline output (persist + notify)
"""

from storage.database import (
    Database,
    DatabaseConnectionError,
    DatabasePersistenceError,
    get_database_url,
)
from storage.sink import WhaleSink, format_notification

__all__ = [
    "Database",
    "DatabaseConnectionError",
    "DatabasePersistenceError",
    "get_database_url",
    "WhaleSink",
    "format_notification",
]
