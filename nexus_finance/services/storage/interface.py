"""
Abstract Storage Interface

We define an abstract interface for the entry store. This allows us to:
1. Keep Google Sheets as the default backend and swap it later
2. Use in-memory storage for testing
3. Keep the ledger decoupled from storage implementation

The interface is intentionally simple: per-row upserts keyed by id,
scoped to one owner. Upserts are expected to be atomic at the storage
layer; concurrent writes to the same id are last-write-wins.
"""

from abc import ABC, abstractmethod
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


class EntryStoreInterface(ABC):
    """
    Abstract interface for the entry store.

    Any storage implementation (Google Sheets, SQLite, etc.)
    must implement these methods.
    """

    # -- Entries --------------------------------------------------------------

    @abstractmethod
    async def list_months(self) -> list[str]:
        """Months (YYYY-MM) that have at least one stored row, ascending."""
        pass

    @abstractmethod
    async def list_entries(self, month: Optional[str] = None) -> list[BudgetEntry]:
        """
        List stored entry rows.

        Args:
            month: Only rows of this month; all rows when None

        Returns:
            Rows in insertion order, tombstones included
        """
        pass

    @abstractmethod
    async def upsert_entry(self, month: str, entry: BudgetEntry) -> bool:
        """
        Insert or replace an entry row by id.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: str) -> bool:
        """
        Delete an entry row by id.

        Returns:
            True if a row was removed, False if none existed
        """
        pass

    # -- Installments ---------------------------------------------------------

    @abstractmethod
    async def list_installments(self) -> list[InstallmentPurchase]:
        pass

    @abstractmethod
    async def upsert_installment(self, purchase: InstallmentPurchase) -> bool:
        pass

    @abstractmethod
    async def delete_installment(self, purchase_id: str) -> bool:
        pass

    # -- Goals ----------------------------------------------------------------

    @abstractmethod
    async def list_goals(self) -> list[SavingsGoal]:
        pass

    @abstractmethod
    async def upsert_goal(self, goal: SavingsGoal) -> bool:
        pass

    @abstractmethod
    async def delete_goal(self, goal_id: str) -> bool:
        pass

    # -- Category budgets and config -----------------------------------------

    @abstractmethod
    async def list_category_budgets(self) -> dict[CategoryType, Decimal]:
        pass

    @abstractmethod
    async def upsert_category_budget(
        self,
        category: CategoryType,
        amount: Decimal,
    ) -> bool:
        pass

    @abstractmethod
    async def get_config(self) -> Optional[AppConfig]:
        """The stored config, or None if the user never saved one."""
        pass

    @abstractmethod
    async def upsert_config(self, config: AppConfig) -> bool:
        pass


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
        """Events of one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class PersistenceError(StorageError):
    """
    A ledger mutation was applied in memory but could not be persisted.

    The in-memory state is not rolled back; the operation can be retried.
    """

    retryable = True

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
