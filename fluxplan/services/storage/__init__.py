"""
Storage Services Package

Provides the abstract record store interface and its implementations:
Google Sheets for real use, in-memory for tests and offline fallback.
"""

from fluxplan.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    RecordStore,
    StorageError,
)
from fluxplan.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
)
from fluxplan.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecordStore",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
]
