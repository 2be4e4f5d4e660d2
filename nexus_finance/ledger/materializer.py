"""
Monthly Ledger Materialization

Builds the authoritative, ordered list of line items for one month from:
1. The month's persisted manual rows
2. The installment catalog
3. The configured credit cards

The result is never stored. Persisted rows that share a synthetic id act
as overrides for that month's synthetic item:
- a row with an installment id replaces the generated quota
- a rollup-id row carries the order chosen by the user
- any row with deleted=True suppresses its id for good

materialize() is a pure function: it never mutates its inputs.
"""

from typing import Iterable, Optional

from nexus_finance.ledger.amortization import resolve_installments
from nexus_finance.ledger.cards import DEFAULT_CARD_LABEL, aggregate_cards
from nexus_finance.ledger.ids import is_rollup_id
from nexus_finance.ledger.periods import parse_month
from nexus_finance.models.budget import (
    BudgetEntry,
    CategoryType,
    InstallmentPurchase,
    PaymentMethod,
)


CATEGORY_ORDER = {category: index for index, category in enumerate(CategoryType)}


def entry_sort_key(entry: BudgetEntry) -> tuple[int, int]:
    """
    Sort key inside one category.

    Explicit orders first (ascending), then unordered credit-like entries,
    then unordered plain entries. Equal keys keep input order.
    """
    if entry.order is not None:
        return (0, entry.order)
    return (1, 0 if entry.is_credit_like else 1)


def sort_entries(entries: Iterable[BudgetEntry]) -> list[BudgetEntry]:
    """Sort entries that all belong to one category."""
    return sorted(entries, key=entry_sort_key)


def sort_for_display(entries: Iterable[BudgetEntry]) -> list[BudgetEntry]:
    """Group by category (enum order) and apply the in-category sort."""
    return sorted(
        entries,
        key=lambda entry: (CATEGORY_ORDER[entry.category], entry_sort_key(entry)),
    )


def split_manual_entries(
    manual_entries: Iterable[BudgetEntry],
) -> tuple[list[BudgetEntry], list[BudgetEntry]]:
    """
    Split a month's active manual rows into (other, credit).

    Tombstones and rollup-id rows are dropped: rollups are always
    regenerated. Income paid by card lands in both lists: it is counted
    as income and also listed in its card's detail.
    """
    active = [
        entry for entry in manual_entries
        if not entry.deleted and not is_rollup_id(entry.id)
    ]
    other = [
        entry for entry in active
        if entry.payment_method != PaymentMethod.CREDIT
        or entry.category == CategoryType.INCOME
    ]
    credit = [
        entry for entry in active
        if entry.payment_method == PaymentMethod.CREDIT
    ]
    return other, credit


def rollup_overrides(
    manual_entries: Iterable[BudgetEntry],
) -> tuple[dict[str, int], set[str]]:
    """Saved orders and tombstoned ids among persisted rollup-id rows."""
    saved_orders = {}
    tombstoned = set()
    for entry in manual_entries:
        if not is_rollup_id(entry.id):
            continue
        if entry.order is not None:
            saved_orders[entry.id] = entry.order
        if entry.deleted:
            tombstoned.add(entry.id)
    return saved_orders, tombstoned


def materialize(
    month: str,
    manual_entries: Iterable[BudgetEntry],
    installment_catalog: Iterable[InstallmentPurchase],
    credit_cards: Optional[list[str]] = None,
    default_card_label: str = DEFAULT_CARD_LABEL,
) -> list[BudgetEntry]:
    """
    Produce the ordered ledger for `month`.

    Args:
        month: Target month (YYYY-MM)
        manual_entries: Every persisted row of the month, tombstones included
        installment_catalog: All installment purchases
        credit_cards: Configured card names
        default_card_label: Card bucket for credit items with no card

    Returns:
        Non-credit manual entries plus card rollups, grouped by category
    """
    parse_month(month)
    manual_entries = list(manual_entries)
    credit_cards = credit_cards or []

    persisted_ids = {entry.id for entry in manual_entries}
    other, credit = split_manual_entries(manual_entries)
    saved_orders, tombstoned = rollup_overrides(manual_entries)

    quotas = resolve_installments(
        month,
        installment_catalog,
        credit_cards=credit_cards,
        suppressed_ids=persisted_ids,
    )
    rollups = aggregate_cards(
        month,
        [*quotas, *credit],
        credit_cards=credit_cards,
        saved_orders=saved_orders,
        suppressed_ids=tombstoned,
        default_label=default_card_label,
    )

    return sort_for_display([*other, *rollups])


def find_entry(entries: Iterable[BudgetEntry], entry_id: str) -> Optional[BudgetEntry]:
    """Look an id up in a materialized list, rollup members included."""
    for entry in entries:
        if entry.id == entry_id:
            return entry
        for sub_entry in entry.sub_entries or []:
            if sub_entry.id == entry_id:
                return sub_entry
    return None
