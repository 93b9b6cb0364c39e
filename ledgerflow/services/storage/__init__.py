"""
Storage Services Package

Provides the record store contract and concrete implementations.
An in-memory store backs tests and local development; Google Sheets
is the persistent backend, designed to be swappable.
"""

from ledgerflow.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
    Subscription,
    paginate,
)
from ledgerflow.services.storage.subscriptions import SubscriptionHub
from ledgerflow.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
)
from ledgerflow.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecordStoreInterface",
    "Subscription",
    "SubscriptionHub",
    "paginate",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
]
