"""
In-Memory Storage Implementation

Used by the test suite and as the fallback when Google Sheets is not
configured. Records are copied on the way in and out so callers can
never mutate stored rows by accident.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fluxplan.models.audit import AuditEvent
from fluxplan.services.storage.interface import (
    AuditStorageInterface,
    RecordStore,
    RecordT,
)


class InMemoryRecordStore(RecordStore[RecordT]):
    """Dict-backed record store keeping insertion order."""

    def __init__(self, records: Optional[list[RecordT]] = None):
        self._rows: dict[str, RecordT] = {}
        for record in records or []:
            self._rows[record.id] = record.model_copy(deep=True)

    async def list(self) -> list[RecordT]:
        return [row.model_copy(deep=True) for row in self._rows.values()]

    async def get(self, record_id: str) -> Optional[RecordT]:
        row = self._rows.get(record_id)
        return row.model_copy(deep=True) if row is not None else None

    async def upsert(self, record: RecordT) -> bool:
        self._rows[record.id] = record.model_copy(deep=True)
        return True

    async def delete(self, record_id: str) -> bool:
        return self._rows.pop(record_id, None) is not None

    def __len__(self) -> int:
        return len(self._rows)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
