"""
Ledger package.

Pure computation over already-loaded data: month arithmetic, installment
amortization, card rollups, the monthly materialization and the goal
balance rules. Nothing here touches storage.
"""

from nexus_finance.ledger.amortization import (
    installment_progress,
    resolve_card,
    resolve_installments,
)
from nexus_finance.ledger.cards import (
    DEFAULT_CARD_LABEL,
    ROLLUP_TAG,
    aggregate_cards,
)
from nexus_finance.ledger.goals import (
    apply_goal_delta,
    goal_adjustments,
    reconcile_goal_balance,
)
from nexus_finance.ledger.ids import (
    SyntheticId,
    SyntheticKind,
    has_synthetic_prefix,
    installment_entry_id,
    parse_synthetic_id,
    rollup_entry_id,
)
from nexus_finance.ledger.materializer import (
    find_entry,
    materialize,
    sort_entries,
    sort_for_display,
)
from nexus_finance.ledger.periods import (
    InvalidPeriodError,
    add_months,
    months_between,
    parse_month,
    previous_months,
)

__all__ = [
    "DEFAULT_CARD_LABEL",
    "ROLLUP_TAG",
    "InvalidPeriodError",
    "SyntheticId",
    "SyntheticKind",
    "add_months",
    "aggregate_cards",
    "apply_goal_delta",
    "find_entry",
    "goal_adjustments",
    "has_synthetic_prefix",
    "installment_entry_id",
    "installment_progress",
    "materialize",
    "months_between",
    "parse_month",
    "parse_synthetic_id",
    "previous_months",
    "reconcile_goal_balance",
    "resolve_card",
    "resolve_installments",
    "rollup_entry_id",
    "sort_entries",
    "sort_for_display",
]
