"""
Audit Logger

Every ledger mutation is logged. This provides:
1. Complete traceability of what the user changed
2. Debugging capability for materialization overrides
3. A record of writes that failed and may need a retry

The audit logger:
- Is async so it fits the mutation flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from nexus_finance.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from nexus_finance.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger("nexus_finance.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit persistence must not break the mutation flow
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entry_saved(
        self,
        entry_id: str,
        name: str,
        amount: Decimal,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entry_saved(
            entry_id=entry_id,
            name=name,
            amount=str(amount),
            month=month,
            correlation_id=correlation_id,
        ))

    async def log_entry_deleted(
        self,
        entry_id: str,
        month: str,
        tombstoned: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        builder = (
            AuditEventBuilder.entry_tombstoned
            if tombstoned
            else AuditEventBuilder.entry_deleted
        )
        await self.log(builder(
            entry_id=entry_id,
            month=month,
            correlation_id=correlation_id,
        ))

    async def log_entry_materialized(
        self,
        entry_id: str,
        month: str,
        order: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entry_materialized(
            entry_id=entry_id,
            month=month,
            order=order,
            correlation_id=correlation_id,
        ))

    async def log_entries_reordered(
        self,
        entry_ids: list[str],
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entries_reordered(
            entry_ids=entry_ids,
            month=month,
            correlation_id=correlation_id,
        ))

    async def log_entries_imported(
        self,
        count: int,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entries_imported(
            count=count,
            month=month,
            correlation_id=correlation_id,
        ))

    async def log_goal_adjusted(
        self,
        goal_id: str,
        previous: Decimal,
        current: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_adjusted(
            goal_id=goal_id,
            previous=str(previous),
            current=str(current),
            correlation_id=correlation_id,
        ))

    async def log_record_changed(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def log_cards_renamed(
        self,
        renames: dict[str, str],
        changed_rows: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.cards_renamed(
            renames=renames,
            changed_rows=changed_rows,
            correlation_id=correlation_id,
        ))

    async def log_persistence_failed(
        self,
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
        month: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.persistence_failed(
            operation=operation,
            error_message=error_message,
            entity_id=entity_id,
            month=month,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., a reorder) and pass it
    through every write that action causes.
    """
    return uuid4()
