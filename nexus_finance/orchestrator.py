"""
Main Orchestrator for Nexus Finance

Ties the pure ledger computation to the entry store and defines the
user-facing mutations of the monthly view:
1. Save / delete / reorder entries (with savings goal side effects)
2. Rename cards across the catalog and every month
3. Maintain the installment catalog, goals, category budgets and config

Each mutation applies its change to the in-memory LedgerState before its
first await, so the view is updated optimistically, then awaits the
writes. A failed write is audited and raised as PersistenceError; the
in-memory state is left as applied. Callers that do not want to wait can
schedule the coroutine with asyncio.create_task().

The month is always an explicit argument. After any mutation, call
materialize(month) again to get the new view.
"""

from datetime import date
from decimal import Decimal
from typing import Awaitable, Iterable, Optional
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError

from nexus_finance.audit import AuditLogger, create_correlation_id
from nexus_finance.config import get_settings
from nexus_finance.ledger.goals import goal_adjustments
from nexus_finance.ledger.ids import has_synthetic_prefix, is_rollup_id, parse_synthetic_id
from nexus_finance.ledger.materializer import find_entry, materialize
from nexus_finance.ledger.periods import parse_month
from nexus_finance.models.audit import AuditEventType
from nexus_finance.models.budget import (
    AppConfig,
    BudgetEntry,
    CategoryType,
    InstallmentPurchase,
    LedgerState,
    MonthlyBudget,
    ParsingResult,
    PaymentMethod,
    SavingsGoal,
    TransactionStatus,
)
from nexus_finance.services.storage import (
    EntryStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStore,
    InMemoryAuditStorage,
    InMemoryEntryStore,
    PersistenceError,
    StorageError,
)


logger = structlog.get_logger(__name__)


def as_row(entry: BudgetEntry, **updates) -> BudgetEntry:
    """Copy of an entry as it is stored: rollup members are never persisted."""
    return entry.model_copy(update={"sub_entries": None, **updates})


class BudgetFlow:
    """
    Orchestrates the monthly ledger and its mutations.

    Holds the session's LedgerState. The state is the single writer's
    view; the store is kept in step one row at a time.
    """

    def __init__(
        self,
        store: EntryStoreInterface,
        state: Optional[LedgerState] = None,
        audit_logger: Optional[AuditLogger] = None,
        card_label: Optional[str] = None,
    ):
        self._store = store
        self._state = state or LedgerState()
        self._audit_logger = audit_logger or AuditLogger()
        self._card_label = card_label or get_settings().ledger.unassigned_card_label
        # (month, entry_id) -> (tombstone or None, goal ids) for deletes not yet written
        self._pending_deletes: dict[tuple, tuple] = {}

    @property
    def state(self) -> LedgerState:
        return self._state

    # =========================================================================
    # VIEW
    # =========================================================================

    def materialize(self, month: str) -> list[BudgetEntry]:
        """The ordered ledger for `month` from the current in-memory state."""
        return materialize(
            month,
            self._state.month_entries(month),
            self._state.installment_purchases,
            credit_cards=self._state.config.credit_cards,
            default_card_label=self._card_label,
        )

    # =========================================================================
    # ENTRIES
    # =========================================================================

    async def save_entry(
        self,
        month: str,
        entry: BudgetEntry,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Insert or replace an entry in `month`.

        Saving a synthetic entry materializes it under the same id. If the
        old or new version links a goal, the goal balance moves by the
        difference (old amount out, new amount in, clamped at zero).
        """
        parse_month(month)
        correlation_id = correlation_id or create_correlation_id()

        self._pending_deletes.pop((month, entry.id), None)
        budget = self._state.ensure_month(month)
        old_entry = budget.find(entry.id)
        row = as_row(entry)
        self._replace_or_append(budget, row)
        changed_goals = self._apply_goal_changes(old_entry, row)

        await self._persist(
            "save_entry",
            self._store.upsert_entry(month, row),
            entity_id=row.id,
            month=month,
            correlation_id=correlation_id,
        )
        await self._persist_goals(changed_goals, correlation_id)
        await self._audit_logger.log_entry_saved(
            entry_id=row.id,
            name=row.name,
            amount=row.amount,
            month=month,
            correlation_id=correlation_id,
        )

    async def delete_entry(
        self,
        month: str,
        entry_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete an entry from `month`.

        Ordinary entries are removed. Synthetic ids have no row to remove,
        so a tombstone (the computed content with deleted=True) is stored
        under the same id instead; an existing copy is marked in place.

        A delete whose writes failed stays pending: calling delete_entry
        again with the same id re-issues the store and goal writes.

        Returns:
            False when the id was not found (nothing was changed)
        """
        parse_month(month)
        correlation_id = correlation_id or create_correlation_id()

        if (month, entry_id) in self._pending_deletes:
            logger.info("delete_retried", entry_id=entry_id, month=month)
            await self._write_delete(month, entry_id, correlation_id)
            return True

        budget = self._state.budgets.get(month)
        existing = budget.find(entry_id) if budget else None
        synthetic = has_synthetic_prefix(entry_id)
        tombstone = None

        if synthetic:
            if parse_synthetic_id(entry_id) is None:
                logger.warning("malformed_synthetic_id", entry_id=entry_id, month=month)
                return False
            if existing is not None:
                if existing.deleted:
                    return False
                target = existing
            else:
                target = find_entry(self.materialize(month), entry_id)
                if target is None:
                    logger.warning("entry_not_found", entry_id=entry_id, month=month)
                    return False
            tombstone = as_row(target, deleted=True)
            self._replace_or_append(self._state.ensure_month(month), tombstone)
        else:
            if existing is None:
                logger.warning("entry_not_found", entry_id=entry_id, month=month)
                return False
            target = existing
            budget.entries = [e for e in budget.entries if e.id != entry_id]

        changed_goals = self._apply_goal_changes(target, None)
        self._pending_deletes[(month, entry_id)] = (
            tombstone,
            [after.id for _, after in changed_goals],
        )
        for before, after in changed_goals:
            await self._audit_logger.log_goal_adjusted(
                goal_id=after.id,
                previous=before.current_amount,
                current=after.current_amount,
                correlation_id=correlation_id,
            )

        await self._write_delete(month, entry_id, correlation_id)
        return True

    async def _write_delete(
        self,
        month: str,
        entry_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Persist a pending delete; it is cleared only once every write succeeded."""
        tombstone, goal_ids = self._pending_deletes[(month, entry_id)]

        if tombstone is not None:
            write = self._store.upsert_entry(month, tombstone)
        else:
            write = self._store.delete_entry(entry_id)
        await self._persist(
            "delete_entry",
            write,
            entity_id=entry_id,
            month=month,
            correlation_id=correlation_id,
        )
        for goal_id in goal_ids:
            goal = self._state.find_goal(goal_id)
            if goal is None:
                continue
            await self._persist(
                "upsert_goal",
                self._store.upsert_goal(goal),
                entity_id=goal_id,
                correlation_id=correlation_id,
            )

        del self._pending_deletes[(month, entry_id)]
        await self._audit_logger.log_entry_deleted(
            entry_id=entry_id,
            month=month,
            tombstoned=tombstone is not None,
            correlation_id=correlation_id,
        )

    async def reorder_entries(
        self,
        month: str,
        entries: Iterable[BudgetEntry],
        correlation_id: Optional[UUID] = None,
    ) -> list[BudgetEntry]:
        """
        Persist a user-chosen order: each entry gets its position as `order`.

        Stored rows get their order updated. Synthetic entries without a
        row are materialized so the order survives the next pass. Ids that
        are neither stored nor part of the current view are skipped.

        Returns:
            The rows that were written
        """
        parse_month(month)
        correlation_id = correlation_id or create_correlation_id()

        view = self.materialize(month)
        budget = self._state.ensure_month(month)
        written = []
        materialized = []

        for index, entry in enumerate(entries):
            existing = budget.find(entry.id)
            if existing is not None:
                row = existing.model_copy(update={"order": index})
            else:
                computed = None
                if parse_synthetic_id(entry.id) is not None:
                    computed = find_entry(view, entry.id)
                if computed is None:
                    logger.warning("entry_not_found", entry_id=entry.id, month=month)
                    continue
                row = as_row(computed, order=index)
                materialized.append(row)
            self._replace_or_append(budget, row)
            written.append(row)

        for row in written:
            await self._persist(
                "reorder_entries",
                self._store.upsert_entry(month, row),
                entity_id=row.id,
                month=month,
                correlation_id=correlation_id,
            )
        for row in materialized:
            await self._audit_logger.log_entry_materialized(
                entry_id=row.id,
                month=month,
                order=row.order,
                correlation_id=correlation_id,
            )
        await self._audit_logger.log_entries_reordered(
            entry_ids=[row.id for row in written],
            month=month,
            correlation_id=correlation_id,
        )
        return written

    async def rename_cards(
        self,
        renames: dict[str, str],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Rewrite card_name on every purchase and stored row matching a key.

        Matching is exact. Rollup-id rows are left alone: rollups are
        recomputed from the renamed underlying entries.

        Returns:
            Number of rows changed
        """
        correlation_id = correlation_id or create_correlation_id()
        renames = {old: new for old, new in renames.items() if old != new}

        changed_purchases = []
        for index, purchase in enumerate(self._state.installment_purchases):
            if purchase.card_name and purchase.card_name in renames:
                updated = purchase.model_copy(update={"card_name": renames[purchase.card_name]})
                self._state.installment_purchases[index] = updated
                changed_purchases.append(updated)

        changed_entries = []
        for month, budget in self._state.budgets.items():
            for index, entry in enumerate(budget.entries):
                if is_rollup_id(entry.id):
                    continue
                if entry.card_name and entry.card_name in renames:
                    updated = entry.model_copy(update={"card_name": renames[entry.card_name]})
                    budget.entries[index] = updated
                    changed_entries.append((month, updated))

        for purchase in changed_purchases:
            await self._persist(
                "rename_cards",
                self._store.upsert_installment(purchase),
                entity_id=purchase.id,
                correlation_id=correlation_id,
            )
        for month, entry in changed_entries:
            await self._persist(
                "rename_cards",
                self._store.upsert_entry(month, entry),
                entity_id=entry.id,
                month=month,
                correlation_id=correlation_id,
            )

        changed = len(changed_purchases) + len(changed_entries)
        await self._audit_logger.log_cards_renamed(
            renames=renames,
            changed_rows=changed,
            correlation_id=correlation_id,
        )
        return changed

    async def import_parsed_items(
        self,
        month: str,
        result: ParsingResult,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[BudgetEntry]:
        """
        Add the items extracted from an uploaded document to `month`.

        Every item becomes a paid, debit entry dated today with a fresh id.
        """
        parse_month(month)
        correlation_id = correlation_id or create_correlation_id()
        today = today or date.today()

        budget = self._state.ensure_month(month)
        imported = [
            BudgetEntry(
                id=str(uuid4()),
                name=item.name,
                amount=item.amount,
                category=item.category,
                tag=item.tag,
                entry_date=today,
                status=TransactionStatus.PAID,
                payment_method=PaymentMethod.DEBIT,
            )
            for item in result.items
        ]
        budget.entries.extend(imported)

        for entry in imported:
            await self._persist(
                "import_parsed_items",
                self._store.upsert_entry(month, entry),
                entity_id=entry.id,
                month=month,
                correlation_id=correlation_id,
            )
        await self._audit_logger.log_entries_imported(
            count=len(imported),
            month=month,
            correlation_id=correlation_id,
        )
        return imported

    # =========================================================================
    # CATALOG, GOALS AND CONFIG
    # =========================================================================

    async def save_installment(self, purchase: InstallmentPurchase) -> None:
        purchases = self._state.installment_purchases
        for index, existing in enumerate(purchases):
            if existing.id == purchase.id:
                purchases[index] = purchase
                break
        else:
            purchases.append(purchase)

        await self._persist(
            "save_installment",
            self._store.upsert_installment(purchase),
            entity_id=purchase.id,
        )
        await self._audit_logger.log_record_changed(
            AuditEventType.INSTALLMENT_SAVED, "installment", purchase.id
        )

    async def delete_installment(self, purchase_id: str) -> None:
        """Remove a purchase; rows already materialized from it are kept."""
        self._state.installment_purchases = [
            p for p in self._state.installment_purchases if p.id != purchase_id
        ]
        await self._persist(
            "delete_installment",
            self._store.delete_installment(purchase_id),
            entity_id=purchase_id,
        )
        await self._audit_logger.log_record_changed(
            AuditEventType.INSTALLMENT_DELETED, "installment", purchase_id
        )

    async def save_goal(self, goal: SavingsGoal) -> None:
        goals = self._state.goals
        for index, existing in enumerate(goals):
            if existing.id == goal.id:
                goals[index] = goal
                break
        else:
            goals.append(goal)

        await self._persist("save_goal", self._store.upsert_goal(goal), entity_id=goal.id)
        await self._audit_logger.log_record_changed(
            AuditEventType.GOAL_SAVED, "goal", goal.id
        )

    async def delete_goal(self, goal_id: str) -> None:
        """Remove a goal; entries still linked to it become no-op links."""
        self._state.goals = [g for g in self._state.goals if g.id != goal_id]
        await self._persist("delete_goal", self._store.delete_goal(goal_id), entity_id=goal_id)
        await self._audit_logger.log_record_changed(
            AuditEventType.GOAL_DELETED, "goal", goal_id
        )

    async def set_category_budget(self, category: CategoryType, amount: Decimal) -> None:
        self._state.category_budgets[category] = amount
        await self._persist(
            "set_category_budget",
            self._store.upsert_category_budget(category, amount),
            entity_id=category.value,
        )
        await self._audit_logger.log_record_changed(
            AuditEventType.CATEGORY_BUDGET_UPDATED, "category_budget", category.value
        )

    async def update_config(self, config: AppConfig) -> None:
        self._state.config = config
        await self._persist("update_config", self._store.upsert_config(config))
        await self._audit_logger.log_record_changed(
            AuditEventType.CONFIG_UPDATED, "config", config.user_name or "default"
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _replace_or_append(budget: MonthlyBudget, row: BudgetEntry) -> None:
        for index, entry in enumerate(budget.entries):
            if entry.id == row.id:
                budget.entries[index] = row
                return
        budget.entries.append(row)

    def _apply_goal_changes(
        self,
        old_entry: Optional[BudgetEntry],
        new_entry: Optional[BudgetEntry],
    ) -> list[tuple[SavingsGoal, SavingsGoal]]:
        """Apply goal balance changes in memory; returns (before, after) pairs."""
        updated = goal_adjustments(self._state.goals, old_entry, new_entry)
        changes = []
        for index, goal in enumerate(self._state.goals):
            if goal.id in updated:
                changes.append((goal, updated[goal.id]))
                self._state.goals[index] = updated[goal.id]
        return changes

    async def _persist_goals(
        self,
        changes: list[tuple[SavingsGoal, SavingsGoal]],
        correlation_id: Optional[UUID],
    ) -> None:
        for before, after in changes:
            await self._persist(
                "upsert_goal",
                self._store.upsert_goal(after),
                entity_id=after.id,
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_goal_adjusted(
                goal_id=after.id,
                previous=before.current_amount,
                current=after.current_amount,
                correlation_id=correlation_id,
            )

    async def _persist(
        self,
        operation: str,
        write: Awaitable,
        entity_id: Optional[str] = None,
        month: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Await a store write; failures are audited and raised as PersistenceError."""
        try:
            await write
        except StorageError as e:
            await self._audit_logger.log_persistence_failed(
                operation=operation,
                error_message=str(e),
                entity_id=entity_id,
                month=month,
                correlation_id=correlation_id,
            )
            raise PersistenceError(operation, str(e)) from e


async def load_state(
    store: EntryStoreInterface,
    default_currency: Optional[str] = None,
) -> LedgerState:
    """Build a LedgerState from everything in the store."""
    budgets = {}
    for month in await store.list_months():
        budgets[month] = MonthlyBudget(month=month, entries=await store.list_entries(month))

    config = await store.get_config()
    if config is None:
        config = AppConfig(
            currency=default_currency or get_settings().ledger.default_currency
        )

    return LedgerState(
        budgets=budgets,
        goals=await store.list_goals(),
        installment_purchases=await store.list_installments(),
        category_budgets=await store.list_category_budgets(),
        config=config,
    )


def create_storage() -> tuple[EntryStoreInterface, AuditLogger]:
    """
    Create the entry store and audit logger for the configured backend.

    Falls back to in-memory storage when Google Sheets is selected but
    its settings do not load.
    """
    if get_settings().app.storage_backend == "google_sheets":
        try:
            client = GoogleSheetsClient()
            return (
                GoogleSheetsEntryStore(client),
                AuditLogger(GoogleSheetsAuditStorage(client)),
            )
        except ValidationError as e:
            logger.warning("storage_not_configured", error=str(e))

    return InMemoryEntryStore(), AuditLogger(InMemoryAuditStorage())


async def create_budget_flow(
    store: Optional[EntryStoreInterface] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> BudgetFlow:
    """
    Factory function: pick storage, load the state and build the flow.

    Args:
        store: Entry store to use; the configured backend when None
        audit_logger: Audit logger to use with an explicit store

    Raises:
        StorageError: If an explicit store cannot be read. A configured
            backend that cannot be read is replaced by in-memory storage.
    """
    if store is not None:
        state = await load_state(store)
        return BudgetFlow(store, state=state, audit_logger=audit_logger)

    store, default_logger = create_storage()
    audit_logger = audit_logger or default_logger
    try:
        state = await load_state(store)
    except StorageError as e:
        await audit_logger.log_error(
            error_type="storage_unavailable",
            error_message=str(e),
            details={"backend": type(store).__name__},
        )
        store = InMemoryEntryStore()
        audit_logger = AuditLogger(InMemoryAuditStorage())
        state = await load_state(store)

    return BudgetFlow(store, state=state, audit_logger=audit_logger)
