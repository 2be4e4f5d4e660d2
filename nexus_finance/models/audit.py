"""
Audit Models for Nexus Finance

Every mutation of the ledger is logged for audit purposes. This gives
a trail of what the user changed, which synthetic entries were
materialized or tombstoned, and which writes failed.

Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Entries
    ENTRY_SAVED = "entry_saved"
    ENTRY_DELETED = "entry_deleted"
    ENTRY_TOMBSTONED = "entry_tombstoned"
    ENTRY_MATERIALIZED = "entry_materialized"
    ENTRIES_REORDERED = "entries_reordered"
    ENTRIES_IMPORTED = "entries_imported"

    # Goals
    GOAL_ADJUSTED = "goal_adjusted"
    GOAL_SAVED = "goal_saved"
    GOAL_DELETED = "goal_deleted"

    # Catalog and configuration
    INSTALLMENT_SAVED = "installment_saved"
    INSTALLMENT_DELETED = "installment_deleted"
    CARDS_RENAMED = "cards_renamed"
    CATEGORY_BUDGET_UPDATED = "category_budget_updated"
    CONFIG_UPDATED = "config_updated"

    # Failures
    PERSISTENCE_FAILED = "persistence_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    entity_id is a string because ledger ids are strings (synthetic ids
    such as ``card-agg-VISA-variable_expense-2024-03`` are not UUIDs).
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'entry', 'goal', 'installment')"
    )
    entity_id: Optional[str] = None
    month: Optional[str] = Field(
        default=None,
        description="Ledger month the event applies to, if any"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "month": self.month,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         month, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.month or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entry_saved(entry, month)
        event = AuditEventBuilder.persistence_failed("save_entry", str(exc))
    """

    @staticmethod
    def entry_saved(
        entry_id: str,
        name: str,
        amount: str,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_SAVED,
            entity_type="entry",
            entity_id=entry_id,
            month=month,
            correlation_id=correlation_id,
            description=f"Entry saved: {name} - {amount}",
            details={"name": name, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def entry_deleted(
        entry_id: str,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            entity_type="entry",
            entity_id=entry_id,
            month=month,
            correlation_id=correlation_id,
            description=f"Entry deleted: {entry_id}",
            is_user_action=True,
        )

    @staticmethod
    def entry_tombstoned(
        entry_id: str,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_TOMBSTONED,
            entity_type="entry",
            entity_id=entry_id,
            month=month,
            correlation_id=correlation_id,
            description=f"Synthetic entry suppressed: {entry_id}",
            is_user_action=True,
        )

    @staticmethod
    def entry_materialized(
        entry_id: str,
        month: str,
        order: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_MATERIALIZED,
            entity_type="entry",
            entity_id=entry_id,
            month=month,
            correlation_id=correlation_id,
            description=f"Synthetic entry persisted: {entry_id}",
            details={"order": order},
        )

    @staticmethod
    def entries_reordered(
        entry_ids: list[str],
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRIES_REORDERED,
            entity_type="entry",
            month=month,
            correlation_id=correlation_id,
            description=f"Reordered {len(entry_ids)} entries",
            details={"entry_ids": entry_ids},
            is_user_action=True,
        )

    @staticmethod
    def entries_imported(
        count: int,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRIES_IMPORTED,
            entity_type="entry",
            month=month,
            correlation_id=correlation_id,
            description=f"Imported {count} entries from a parsed document",
            details={"count": count},
            is_user_action=True,
        )

    @staticmethod
    def goal_adjusted(
        goal_id: str,
        previous: str,
        current: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_ADJUSTED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal balance {previous} -> {current}",
            details={"previous": previous, "current": current},
        )

    @staticmethod
    def record_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        """Generic save/delete event for goals, installments and config."""
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {event_type.value.split('_')[-1]}: {entity_id}",
            is_user_action=True,
        )

    @staticmethod
    def cards_renamed(
        renames: dict[str, str],
        changed_rows: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARDS_RENAMED,
            entity_type="card",
            correlation_id=correlation_id,
            description=f"Renamed {len(renames)} cards across {changed_rows} rows",
            details={"renames": renames, "changed_rows": changed_rows},
            is_user_action=True,
        )

    @staticmethod
    def persistence_failed(
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
        month: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_id=entity_id,
            month=month,
            correlation_id=correlation_id,
            description=f"Persistence failed during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
