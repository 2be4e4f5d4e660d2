"""Tests for the audit logger."""

import pytest

from nexus_finance.audit import AuditLogger, create_correlation_id
from nexus_finance.models.audit import AuditEventBuilder, AuditEventType
from nexus_finance.services.storage import InMemoryAuditStorage, StorageError


class BrokenAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise StorageError("audit sheet unavailable")


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_events_share_correlation_id(self):
        storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await audit_logger.log_entry_deleted(
            "inst-p1-2024-03", "2024-03", tombstoned=True, correlation_id=correlation_id
        )
        await audit_logger.log_entries_reordered(
            ["a", "b"], "2024-03", correlation_id=correlation_id
        )

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.ENTRY_TOMBSTONED,
            AuditEventType.ENTRIES_REORDERED,
        ]

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        audit_logger = AuditLogger(BrokenAuditStorage())
        event = AuditEventBuilder.cards_renamed({"VISA": "Visa Gold"}, changed_rows=3)

        assert await audit_logger.log(event) is False

    @pytest.mark.asyncio
    async def test_log_without_storage(self):
        event = AuditEventBuilder.persistence_failed("save_entry", "timeout")
        assert await AuditLogger().log(event) is True
