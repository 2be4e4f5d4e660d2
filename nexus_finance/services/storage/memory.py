"""
In-Memory Storage Implementation

Dict-backed stores with the same contract as the Google Sheets backend.
Used by the test suite and as the fallback when no backend is configured.
Records are copied on the way in and out so callers cannot mutate
stored state by accident.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from nexus_finance.models.audit import AuditEvent
from nexus_finance.models.budget import (
    AppConfig,
    BudgetEntry,
    CategoryType,
    InstallmentPurchase,
    SavingsGoal,
)
from nexus_finance.services.storage.interface import (
    AuditStorageInterface,
    EntryStoreInterface,
)


class InMemoryEntryStore(EntryStoreInterface):
    """Entry store that keeps everything in process memory."""

    def __init__(self):
        # entry id -> (month, entry)
        self._entries: dict[str, tuple[str, BudgetEntry]] = {}
        self._installments: dict[str, InstallmentPurchase] = {}
        self._goals: dict[str, SavingsGoal] = {}
        self._category_budgets: dict[CategoryType, Decimal] = {}
        self._config: Optional[AppConfig] = None

    async def list_months(self) -> list[str]:
        return sorted({month for month, _ in self._entries.values()})

    async def list_entries(self, month: Optional[str] = None) -> list[BudgetEntry]:
        return [
            entry.model_copy(deep=True)
            for entry_month, entry in self._entries.values()
            if month is None or entry_month == month
        ]

    async def upsert_entry(self, month: str, entry: BudgetEntry) -> bool:
        self._entries[entry.id] = (month, entry.model_copy(deep=True))
        return True

    async def delete_entry(self, entry_id: str) -> bool:
        return self._entries.pop(entry_id, None) is not None

    async def list_installments(self) -> list[InstallmentPurchase]:
        return [p.model_copy() for p in self._installments.values()]

    async def upsert_installment(self, purchase: InstallmentPurchase) -> bool:
        self._installments[purchase.id] = purchase.model_copy()
        return True

    async def delete_installment(self, purchase_id: str) -> bool:
        return self._installments.pop(purchase_id, None) is not None

    async def list_goals(self) -> list[SavingsGoal]:
        return [g.model_copy() for g in self._goals.values()]

    async def upsert_goal(self, goal: SavingsGoal) -> bool:
        self._goals[goal.id] = goal.model_copy()
        return True

    async def delete_goal(self, goal_id: str) -> bool:
        return self._goals.pop(goal_id, None) is not None

    async def list_category_budgets(self) -> dict[CategoryType, Decimal]:
        return dict(self._category_budgets)

    async def upsert_category_budget(
        self,
        category: CategoryType,
        amount: Decimal,
    ) -> bool:
        self._category_budgets[category] = amount
        return True

    async def get_config(self) -> Optional[AppConfig]:
        return self._config.model_copy(deep=True) if self._config else None

    async def upsert_config(self, config: AppConfig) -> bool:
        self._config = config.model_copy(deep=True)
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
