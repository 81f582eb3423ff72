"""
Abstract Storage Interface

DESIGN DECISION: The engine talks to every collection through the same
four operations: list, get, upsert and delete by id.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Rely on upsert-by-id as the only consistency mechanism (last write wins)

Generated obligations depend on this: their ids are deterministic, so an
upsert of a settled generated row replaces any earlier row with that id.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from fluxplan.models.audit import AuditEvent


RecordT = TypeVar("RecordT", bound=BaseModel)


class RecordStore(ABC, Generic[RecordT]):
    """
    Abstract interface for one entity collection.

    Records are pydantic models with a string `id` field.
    """

    @abstractmethod
    async def list(self) -> list[RecordT]:
        """
        Return every record in the collection.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def get(self, record_id: str) -> Optional[RecordT]:
        """
        Retrieve a record by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def upsert(self, record: RecordT) -> bool:
        """
        Insert the record, or replace the stored row with the same id.

        Returns:
            True if written successfully

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a row was deleted, False if it did not exist
        """
        pass

    async def upsert_many(self, records: list[RecordT]) -> int:
        """Upsert records one by one; returns how many were written."""
        written = 0
        for record in records:
            if await self.upsert(record):
                written += 1
        return written

    async def delete_many(self, record_ids: list[str]) -> int:
        """Delete records one by one; returns how many existed."""
        deleted = 0
        for record_id in record_ids:
            if await self.delete(record_id):
                deleted += 1
        return deleted


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one settlement).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
