"""
Storage Models Package.

- WhaleTransactionRecord (whale_transactions)
- NotificationRecord (notifications)
"""

from storage.models.base import Base, CreatedAtMixin
from storage.models.whale import NotificationRecord, WhaleTransactionRecord

__all__ = [
    "Base",
    "CreatedAtMixin",
    "NotificationRecord",
    "WhaleTransactionRecord",
]
