"""
Tests for the BudgetFlow mutations.

Every test runs against the in-memory store; no Google Sheets access.
"""

from datetime import date
from decimal import Decimal

import pytest

from nexus_finance import orchestrator
from nexus_finance.audit import AuditLogger
from nexus_finance.ledger.periods import InvalidPeriodError
from nexus_finance.models.audit import AuditEventType
from nexus_finance.models.budget import (
    AppConfig,
    CategoryType,
    LedgerState,
    MonthlyBudget,
    ParsedItem,
    ParsingResult,
    PaymentMethod,
    SavingsGoal,
    TransactionStatus,
)
from nexus_finance.orchestrator import BudgetFlow, create_budget_flow, load_state
from nexus_finance.services.storage import (
    InMemoryEntryStore,
    PersistenceError,
    StorageError,
)


MONTH = "2024-03"
VISA_ROLLUP = "card-agg-VISA-variable_expense-2024-03"


class FailingEntryStore(InMemoryEntryStore):
    """Store whose entry writes always fail."""

    async def upsert_entry(self, month, entry):
        raise StorageError("sheet unavailable")


class FlakyEntryStore(InMemoryEntryStore):
    """Store whose next write to each method named in `fail_next` fails once."""

    def __init__(self):
        super().__init__()
        self.fail_next = set()

    def _maybe_fail(self, method):
        if method in self.fail_next:
            self.fail_next.discard(method)
            raise StorageError("sheet unavailable")

    async def upsert_entry(self, month, entry):
        self._maybe_fail("upsert_entry")
        return await super().upsert_entry(month, entry)

    async def delete_entry(self, entry_id):
        self._maybe_fail("delete_entry")
        return await super().delete_entry(entry_id)

    async def upsert_goal(self, goal):
        self._maybe_fail("upsert_goal")
        return await super().upsert_goal(goal)


def event_types(audit_storage):
    return [event.event_type for event in audit_storage.events]


class TestSaveEntry:
    """Tests for save_entry()."""

    @pytest.mark.asyncio
    async def test_save_inserts_and_persists(self, make_flow, make_entry, store, audit_storage):
        flow = make_flow()

        await flow.save_entry(MONTH, make_entry("groceries", "200"))

        assert [e.id for e in flow.materialize(MONTH)] == ["groceries"]
        assert [e.id for e in await store.list_entries(MONTH)] == ["groceries"]
        assert AuditEventType.ENTRY_SAVED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_save_replaces_same_id(self, make_flow, make_entry, store):
        flow = make_flow()
        await flow.save_entry(MONTH, make_entry("groceries", "200"))

        await flow.save_entry(MONTH, make_entry("groceries", "250"))

        assert len(flow.state.month_entries(MONTH)) == 1
        stored = await store.list_entries(MONTH)
        assert stored[0].amount == Decimal("250")

    @pytest.mark.asyncio
    async def test_invalid_month_is_rejected(self, make_flow, make_entry):
        with pytest.raises(InvalidPeriodError):
            await make_flow().save_entry("2024-3", make_entry("groceries"))


class TestGoalBalance:
    """A goal's balance tracks its linked, non-deleted entries."""

    @pytest.fixture
    def goal_state(self):
        return LedgerState(goals=[SavingsGoal(id="g1", name="Vacation")])

    @pytest.mark.asyncio
    async def test_save_edit_delete_keeps_balance(self, make_flow, make_entry, goal_state, store):
        flow = make_flow(goal_state)
        deposit = make_entry("deposit", "100", category=CategoryType.SAVINGS, goal_id="g1")

        await flow.save_entry(MONTH, deposit)
        assert flow.state.find_goal("g1").current_amount == Decimal("100")

        await flow.save_entry(MONTH, deposit.model_copy(update={"amount": Decimal("150")}))
        assert flow.state.find_goal("g1").current_amount == Decimal("150")

        await flow.delete_entry(MONTH, "deposit")
        assert flow.state.find_goal("g1").current_amount == Decimal("0")
        assert (await store.list_goals())[0].current_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_moving_entry_between_goals(self, make_flow, make_entry):
        state = LedgerState(goals=[
            SavingsGoal(id="g1", name="Vacation"),
            SavingsGoal(id="g2", name="Car"),
        ])
        flow = make_flow(state)
        deposit = make_entry("deposit", "80", category=CategoryType.SAVINGS, goal_id="g1")
        await flow.save_entry(MONTH, deposit)

        await flow.save_entry(MONTH, deposit.model_copy(update={"goal_id": "g2"}))

        assert flow.state.find_goal("g1").current_amount == Decimal("0")
        assert flow.state.find_goal("g2").current_amount == Decimal("80")

    @pytest.mark.asyncio
    async def test_delete_clamps_at_zero(self, make_flow, make_entry):
        deposit = make_entry("deposit", "100", category=CategoryType.SAVINGS, goal_id="g1")
        state = LedgerState(
            budgets={MONTH: MonthlyBudget(month=MONTH, entries=[deposit])},
            goals=[SavingsGoal(id="g1", name="Vacation", current_amount=Decimal("30"))],
        )
        flow = make_flow(state)

        await flow.delete_entry(MONTH, "deposit")

        assert flow.state.find_goal("g1").current_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_missing_goal_is_ignored(self, make_flow, make_entry, store):
        flow = make_flow()

        await flow.save_entry(MONTH, make_entry("deposit", goal_id="gone"))

        assert await store.list_goals() == []

    @pytest.mark.asyncio
    async def test_tombstones_hold_no_balance(self, make_flow, make_entry):
        """Restoring a tombstoned row adds its amount without reverting it first."""
        tombstone = make_entry(
            "deposit", "100", category=CategoryType.SAVINGS, goal_id="g1", deleted=True
        )
        state = LedgerState(
            budgets={MONTH: MonthlyBudget(month=MONTH, entries=[tombstone])},
            goals=[SavingsGoal(id="g1", name="Vacation", current_amount=Decimal("50"))],
        )
        flow = make_flow(state)

        await flow.save_entry(MONTH, tombstone.model_copy(update={"deleted": False}))
        assert flow.state.find_goal("g1").current_amount == Decimal("150")

        await flow.save_entry(MONTH, tombstone)
        assert flow.state.find_goal("g1").current_amount == Decimal("50")


class TestDeleteEntry:
    """Tests for delete_entry()."""

    @pytest.mark.asyncio
    async def test_ordinary_entry_is_removed(self, make_flow, make_entry, store, audit_storage):
        flow = make_flow()
        await flow.save_entry(MONTH, make_entry("groceries"))

        assert await flow.delete_entry(MONTH, "groceries") is True

        assert flow.materialize(MONTH) == []
        assert await store.list_entries(MONTH) == []
        assert AuditEventType.ENTRY_DELETED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_rollup_delete_writes_tombstone(self, make_flow, make_credit_entry, store, audit_storage):
        """Deleted rollup stays gone while its members stay stored."""
        flow = make_flow()
        await flow.save_entry(MONTH, make_credit_entry("a", "500", card_name="visa"))
        await flow.save_entry(MONTH, make_credit_entry("b", "300", card_name="VISA"))
        assert [e.id for e in flow.materialize(MONTH)] == [VISA_ROLLUP]

        assert await flow.delete_entry(MONTH, VISA_ROLLUP) is True

        assert flow.materialize(MONTH) == []
        stored = {e.id: e for e in await store.list_entries(MONTH)}
        assert set(stored) == {"a", "b", VISA_ROLLUP}
        assert stored[VISA_ROLLUP].deleted is True
        assert stored[VISA_ROLLUP].sub_entries is None
        assert AuditEventType.ENTRY_TOMBSTONED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_installment_delete_suppresses_one_month(self, make_flow, purchase):
        flow = make_flow(LedgerState(installment_purchases=[purchase]))

        await flow.delete_entry(MONTH, "inst-p1-2024-03")

        assert flow.materialize(MONTH) == []
        assert len(flow.materialize("2024-04")) == 1

    @pytest.mark.asyncio
    async def test_second_delete_is_noop(self, make_flow, purchase, store):
        flow = make_flow(LedgerState(installment_purchases=[purchase]))
        await flow.delete_entry(MONTH, "inst-p1-2024-03")

        assert await flow.delete_entry(MONTH, "inst-p1-2024-03") is False
        assert len(await store.list_entries(MONTH)) == 1

    @pytest.mark.asyncio
    async def test_malformed_synthetic_id_is_noop(self, make_flow, store):
        flow = make_flow()

        assert await flow.delete_entry(MONTH, "card-agg-VISA") is False
        assert await store.list_entries() == []

    @pytest.mark.asyncio
    async def test_unknown_ids_are_noop(self, make_flow, store):
        flow = make_flow()

        assert await flow.delete_entry(MONTH, "missing") is False
        assert await flow.delete_entry(MONTH, VISA_ROLLUP) is False
        assert await store.list_entries() == []


class TestReorderEntries:
    """Tests for reorder_entries()."""

    @pytest.mark.asyncio
    async def test_reorder_materializes_rollup(self, make_flow, make_entry, make_credit_entry, store, audit_storage):
        flow = make_flow()
        await flow.save_entry(MONTH, make_entry("groceries", "200"))
        await flow.save_entry(MONTH, make_credit_entry("a", "500"))
        view = flow.materialize(MONTH)
        assert [e.id for e in view] == [VISA_ROLLUP, "groceries"]

        written = await flow.reorder_entries(MONTH, list(reversed(view)))

        assert [(e.id, e.order) for e in written] == [("groceries", 0), (VISA_ROLLUP, 1)]
        assert [e.id for e in flow.materialize(MONTH)] == ["groceries", VISA_ROLLUP]

        stored = {e.id: e for e in await store.list_entries(MONTH)}
        assert stored[VISA_ROLLUP].order == 1
        assert stored[VISA_ROLLUP].sub_entries is None
        assert stored[VISA_ROLLUP].deleted is False
        assert AuditEventType.ENTRY_MATERIALIZED in event_types(audit_storage)
        assert AuditEventType.ENTRIES_REORDERED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_reordered_rollup_keeps_recomputing(self, make_flow, make_entry, make_credit_entry):
        flow = make_flow()
        await flow.save_entry(MONTH, make_entry("groceries", "200"))
        await flow.save_entry(MONTH, make_credit_entry("a", "500"))
        await flow.reorder_entries(MONTH, list(reversed(flow.materialize(MONTH))))

        await flow.save_entry(MONTH, make_credit_entry("b", "100"))

        rollup = flow.materialize(MONTH)[1]
        assert rollup.id == VISA_ROLLUP
        assert rollup.amount == Decimal("600")
        assert rollup.order == 1

    @pytest.mark.asyncio
    async def test_unknown_ids_are_skipped(self, make_flow, make_entry):
        flow = make_flow()
        await flow.save_entry(MONTH, make_entry("groceries"))

        written = await flow.reorder_entries(
            MONTH, [make_entry("ghost"), make_entry("groceries")]
        )

        assert [(e.id, e.order) for e in written] == [("groceries", 1)]


class TestRenameCards:
    """Tests for rename_cards()."""

    @pytest.mark.asyncio
    async def test_rename_rewrites_purchases_and_entries(self, make_flow, make_credit_entry, purchase, store):
        rollup_row = make_credit_entry(
            "card-agg-VISA A-fixed_expense-2024-03", card_name="VISA A", order=0
        )
        state = LedgerState(
            budgets={MONTH: MonthlyBudget(month=MONTH, entries=[
                make_credit_entry("a", card_name="VISA A"),
                make_credit_entry("b", card_name="visa a"),
                rollup_row,
            ])},
            installment_purchases=[purchase],
        )
        flow = make_flow(state)

        changed = await flow.rename_cards({"VISA A": "Visa Gold"})

        assert changed == 2
        assert flow.state.installment_purchases[0].card_name == "Visa Gold"
        cards = {e.id: e.card_name for e in flow.state.month_entries(MONTH)}
        assert cards["a"] == "Visa Gold"
        assert cards["b"] == "visa a"
        assert cards[rollup_row.id] == "VISA A"
        assert (await store.list_installments())[0].card_name == "Visa Gold"


class TestPersistenceFailure:
    """Store failures surface as PersistenceError after the in-memory change."""

    @pytest.mark.asyncio
    async def test_failed_write_raises_and_keeps_state(self, make_flow, make_entry, audit_storage):
        flow = make_flow(entry_store=FailingEntryStore())

        with pytest.raises(PersistenceError) as exc_info:
            await flow.save_entry(MONTH, make_entry("groceries"))

        assert exc_info.value.operation == "save_entry"
        assert exc_info.value.retryable is True
        assert [e.id for e in flow.materialize(MONTH)] == ["groceries"]
        assert AuditEventType.PERSISTENCE_FAILED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_failed_delete_is_written_on_retry(self, make_flow, make_entry):
        """Repeating a failed delete removes the row and stores the goal change."""
        flaky = FlakyEntryStore()
        flow = make_flow(LedgerState(goals=[SavingsGoal(id="g1", name="Vacation")]), entry_store=flaky)
        await flow.save_entry(
            MONTH, make_entry("deposit", "100", category=CategoryType.SAVINGS, goal_id="g1")
        )

        flaky.fail_next = {"delete_entry"}
        with pytest.raises(PersistenceError):
            await flow.delete_entry(MONTH, "deposit")
        assert flow.materialize(MONTH) == []
        assert (await flaky.list_goals())[0].current_amount == Decimal("100")

        assert await flow.delete_entry(MONTH, "deposit") is True

        assert await flaky.list_entries(MONTH) == []
        assert (await flaky.list_goals())[0].current_amount == Decimal("0")
        assert flow.state.find_goal("g1").current_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_failed_goal_write_is_retried_with_delete(self, make_flow, make_entry):
        flaky = FlakyEntryStore()
        flow = make_flow(LedgerState(goals=[SavingsGoal(id="g1", name="Vacation")]), entry_store=flaky)
        await flow.save_entry(
            MONTH, make_entry("deposit", "100", category=CategoryType.SAVINGS, goal_id="g1")
        )

        flaky.fail_next = {"upsert_goal"}
        with pytest.raises(PersistenceError) as exc_info:
            await flow.delete_entry(MONTH, "deposit")
        assert exc_info.value.operation == "upsert_goal"

        assert await flow.delete_entry(MONTH, "deposit") is True
        assert (await flaky.list_goals())[0].current_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_failed_tombstone_is_written_on_retry(self, make_flow, purchase):
        flaky = FlakyEntryStore()
        flow = make_flow(LedgerState(installment_purchases=[purchase]), entry_store=flaky)

        flaky.fail_next = {"upsert_entry"}
        with pytest.raises(PersistenceError):
            await flow.delete_entry(MONTH, "inst-p1-2024-03")
        assert await flaky.list_entries(MONTH) == []

        assert await flow.delete_entry(MONTH, "inst-p1-2024-03") is True

        stored = await flaky.list_entries(MONTH)
        assert [(e.id, e.deleted) for e in stored] == [("inst-p1-2024-03", True)]
        assert await flow.delete_entry(MONTH, "inst-p1-2024-03") is False

    @pytest.mark.asyncio
    async def test_save_after_failed_delete_cancels_retry(self, make_flow, make_entry):
        flaky = FlakyEntryStore()
        flow = make_flow(entry_store=flaky)
        await flow.save_entry(MONTH, make_entry("groceries"))

        flaky.fail_next = {"delete_entry"}
        with pytest.raises(PersistenceError):
            await flow.delete_entry(MONTH, "groceries")
        await flow.save_entry(MONTH, make_entry("groceries", "60"))

        assert await flow.delete_entry(MONTH, "groceries") is True
        assert await flaky.list_entries(MONTH) == []
        assert await flow.delete_entry(MONTH, "groceries") is False


class TestImportParsedItems:
    """Tests for import_parsed_items()."""

    @pytest.mark.asyncio
    async def test_items_become_paid_debit_entries(self, make_flow, store):
        flow = make_flow()
        result = ParsingResult(items=[
            ParsedItem(name="Supermarket", amount=Decimal("45.50"), category=CategoryType.VARIABLE_EXPENSE),
            ParsedItem(name="Salary", amount=Decimal("1000"), category=CategoryType.INCOME, tag="Salary"),
        ])

        imported = await flow.import_parsed_items(MONTH, result, today=date(2024, 3, 5))

        assert len(imported) == 2
        assert len({e.id for e in imported}) == 2
        for entry in imported:
            assert entry.status == TransactionStatus.PAID
            assert entry.payment_method == PaymentMethod.DEBIT
            assert entry.entry_date == date(2024, 3, 5)
        assert len(await store.list_entries(MONTH)) == 2


class TestCatalogAndConfig:
    """Tests for the non-entry mutations."""

    @pytest.mark.asyncio
    async def test_installment_round_trip(self, make_flow, purchase, store):
        flow = make_flow()

        await flow.save_installment(purchase)
        assert len(flow.materialize(MONTH)) == 1

        await flow.delete_installment(purchase.id)
        assert flow.materialize(MONTH) == []
        assert await store.list_installments() == []

    @pytest.mark.asyncio
    async def test_goal_budget_and_config(self, make_flow, store, audit_storage):
        flow = make_flow()

        await flow.save_goal(SavingsGoal(id="g1", name="Vacation", target_amount=Decimal("500")))
        await flow.set_category_budget(CategoryType.VARIABLE_EXPENSE, Decimal("800"))
        await flow.update_config(AppConfig(currency="USD", credit_cards=["VISA"]))

        assert [g.id for g in await store.list_goals()] == ["g1"]
        assert await store.list_category_budgets() == {
            CategoryType.VARIABLE_EXPENSE: Decimal("800")
        }
        assert (await store.get_config()).credit_cards == ["VISA"]
        assert AuditEventType.CONFIG_UPDATED in event_types(audit_storage)

        await flow.delete_goal("g1")
        assert flow.state.goals == []

    @pytest.mark.asyncio
    async def test_single_card_config_labels_unassigned_items(self, make_flow, make_credit_entry):
        flow = make_flow(LedgerState(config=AppConfig(credit_cards=["VISA"])))

        await flow.save_entry(MONTH, make_credit_entry("a", card_name=None))

        assert [e.id for e in flow.materialize(MONTH)] == [VISA_ROLLUP]


class TestLoadState:
    """Tests for load_state() and create_budget_flow()."""

    @pytest.mark.asyncio
    async def test_state_is_rebuilt_from_store(self, make_entry, purchase, audit_storage):
        store = InMemoryEntryStore()
        await store.upsert_entry(MONTH, make_entry("groceries"))
        await store.upsert_entry("2024-04", make_entry("rent"))
        await store.upsert_installment(purchase)
        await store.upsert_goal(SavingsGoal(id="g1", name="Vacation"))

        state = await load_state(store, default_currency="USD")

        assert sorted(state.budgets) == [MONTH, "2024-04"]
        assert [e.id for e in state.month_entries(MONTH)] == ["groceries"]
        assert state.installment_purchases[0].id == "p1"
        assert state.goals[0].id == "g1"
        assert state.config.currency == "USD"

    @pytest.mark.asyncio
    async def test_create_budget_flow_with_explicit_store(self, make_entry):
        store = InMemoryEntryStore()
        await store.upsert_entry(MONTH, make_entry("groceries"))

        flow = await create_budget_flow(store)

        assert isinstance(flow, BudgetFlow)
        assert [e.id for e in flow.materialize(MONTH)] == ["groceries"]

    @pytest.mark.asyncio
    async def test_unreadable_backend_falls_back_to_memory(self, monkeypatch, audit_storage):
        class UnreadableStore(InMemoryEntryStore):
            async def list_months(self):
                raise StorageError("sheet unavailable")

        monkeypatch.setattr(
            orchestrator,
            "create_storage",
            lambda: (UnreadableStore(), AuditLogger(audit_storage)),
        )

        flow = await create_budget_flow()

        assert flow.materialize(MONTH) == []
        assert event_types(audit_storage) == [AuditEventType.SYSTEM_ERROR]
