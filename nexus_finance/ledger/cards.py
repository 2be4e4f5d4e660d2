"""
Credit Card Aggregation

Rolls credit items (manual credit entries plus installment quotas) into
one synthetic entry per (card, effective category).

Grouping by category as well as card keeps fixed financed items (e.g.
insurance) apart from variable ones on the same card, so the fixed /
variable expense split stays correct.

Income paid by card is bucketed under VARIABLE_EXPENSE so it shows in the
card's detail, but it never counts towards the rollup total: the same
money is already counted as income elsewhere in the month.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from nexus_finance.ledger.amortization import resolve_card
from nexus_finance.ledger.ids import (
    normalize_card_name,
    rollup_entry_id,
    rollup_group_key,
)
from nexus_finance.ledger.periods import month_start
from nexus_finance.models.budget import (
    BudgetEntry,
    CategoryType,
    PaymentMethod,
    TransactionStatus,
)


DEFAULT_CARD_LABEL = "Other"
ROLLUP_TAG = "Credit Card"

# Items without installment data sort after every financed item
NO_INSTALLMENTS_REMAINING = 999


@dataclass
class CardGroup:
    """Accumulator for one (card, effective category) bucket."""
    key: str
    card_name: str
    category: CategoryType
    total: Decimal = Decimal("0")
    items: list[BudgetEntry] = field(default_factory=list)


def effective_category(entry: BudgetEntry) -> CategoryType:
    if entry.category == CategoryType.INCOME:
        return CategoryType.VARIABLE_EXPENSE
    return entry.category


def remaining_sort_key(entry: BudgetEntry) -> int:
    remaining = entry.remaining_installments
    return NO_INSTALLMENTS_REMAINING if remaining is None else remaining


def rollup_name(card_name: str, category: CategoryType, default_label: str) -> str:
    suffix = " (Fixed)" if category == CategoryType.FIXED_EXPENSE else ""
    if normalize_card_name(card_name) == normalize_card_name(default_label):
        return f"Card Consumption{suffix}"
    return f"Consumption {card_name}{suffix}"


def group_credit_entries(
    entries: Iterable[BudgetEntry],
    credit_cards: Optional[list[str]] = None,
    default_label: str = DEFAULT_CARD_LABEL,
) -> list[CardGroup]:
    """Bucket credit entries; groups come back in first-seen order."""
    credit_cards = credit_cards or []
    groups: dict[str, CardGroup] = {}

    for entry in entries:
        card_name = resolve_card(entry.card_name, credit_cards) or default_label
        category = effective_category(entry)
        key = rollup_group_key(card_name, category)

        group = groups.get(key)
        if group is None:
            # First-seen casing is kept for display
            group = groups[key] = CardGroup(key=key, card_name=card_name, category=category)

        group.items.append(entry)
        if entry.category != CategoryType.INCOME:
            group.total += entry.amount

    return list(groups.values())


def aggregate_cards(
    month: str,
    entries: Iterable[BudgetEntry],
    credit_cards: Optional[list[str]] = None,
    saved_orders: Optional[dict[str, int]] = None,
    suppressed_ids: Optional[set[str]] = None,
    default_label: str = DEFAULT_CARD_LABEL,
) -> list[BudgetEntry]:
    """
    Build the rollup entries for `month`.

    Args:
        month: Target month (YYYY-MM)
        entries: Manual credit entries and installment quotas
        credit_cards: Configured card names, for the single-card fallback
        saved_orders: Persisted order per rollup id, so drag-reordering
            survives recomputation
        suppressed_ids: Rollup ids with a persisted tombstone
        default_label: Card bucket for items with no resolvable card

    Returns:
        One rollup per non-suppressed group
    """
    saved_orders = saved_orders or {}
    suppressed_ids = suppressed_ids or set()
    rollups = []

    for group in group_credit_entries(entries, credit_cards, default_label):
        rollup_id = rollup_entry_id(group.key, month)
        if rollup_id in suppressed_ids:
            continue

        items = sorted(group.items, key=remaining_sort_key)
        rollups.append(BudgetEntry(
            id=rollup_id,
            name=rollup_name(group.card_name, group.category, default_label),
            amount=group.total,
            category=group.category,
            tag=ROLLUP_TAG,
            entry_date=month_start(month),
            status=TransactionStatus.PENDING,
            payment_method=PaymentMethod.CREDIT,
            card_name=group.card_name,
            order=saved_orders.get(rollup_id),
            sub_entries=items,
        ))

    return rollups
