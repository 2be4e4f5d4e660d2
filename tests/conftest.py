"""Shared test fixtures."""

from datetime import date
from decimal import Decimal

import pytest

from nexus_finance.audit import AuditLogger
from nexus_finance.models.budget import (
    BudgetEntry,
    CategoryType,
    InstallmentPurchase,
    LedgerState,
    PaymentMethod,
)
from nexus_finance.orchestrator import BudgetFlow
from nexus_finance.services.storage import InMemoryAuditStorage, InMemoryEntryStore


@pytest.fixture
def make_entry():
    """Factory for manual entries with sensible defaults."""
    def factory(entry_id, amount="100", **overrides):
        fields = {
            "id": entry_id,
            "name": entry_id.title(),
            "amount": Decimal(amount),
            "category": CategoryType.VARIABLE_EXPENSE,
            "entry_date": date(2024, 3, 10),
        }
        fields.update(overrides)
        return BudgetEntry(**fields)
    return factory


@pytest.fixture
def make_credit_entry(make_entry):
    def factory(entry_id, amount="100", card_name="VISA", **overrides):
        return make_entry(
            entry_id,
            amount,
            payment_method=PaymentMethod.CREDIT,
            card_name=card_name,
            **overrides,
        )
    return factory


@pytest.fixture
def purchase():
    """Scenario purchase: 1200 over 12 months from 2024-01 on VISA A."""
    return InstallmentPurchase(
        id="p1",
        name="Laptop",
        total_amount=Decimal("1200"),
        installments=12,
        start_date="2024-01",
        card_name="VISA A",
    )


@pytest.fixture
def store():
    return InMemoryEntryStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def make_flow(store, audit_storage):
    """Build a BudgetFlow over the in-memory store with the given state."""
    def factory(state=None, entry_store=None):
        return BudgetFlow(
            entry_store or store,
            state=state or LedgerState(),
            audit_logger=AuditLogger(audit_storage),
            card_label="Other",
        )
    return factory
