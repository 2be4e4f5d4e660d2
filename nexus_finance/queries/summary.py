"""
Ledger Summaries

Deterministic figures computed from materialized or persisted data:
category totals, monthly net flow, the income/expense trend and card
usage. Nothing here renders; the presentation layer formats the numbers.
"""

from decimal import Decimal
from typing import Iterable

from nexus_finance.ledger.periods import previous_months
from nexus_finance.models.budget import (
    BudgetEntry,
    CategoryType,
    LedgerState,
    MonthlyBudget,
    SavingsGoal,
)


ZERO = Decimal("0")


def category_totals(entries: Iterable[BudgetEntry]) -> dict[CategoryType, Decimal]:
    """
    Sum of amounts per category over a materialized month.

    Rollups already exclude card-paid income from their amount, so the
    income is counted once, from its own manual entry.
    """
    totals = {category: ZERO for category in CategoryType}
    for entry in entries:
        if entry.deleted:
            continue
        totals[entry.category] += entry.amount
    return totals


def net_flow(totals: dict[CategoryType, Decimal]) -> Decimal:
    """Income minus every other category."""
    income = totals.get(CategoryType.INCOME, ZERO)
    outflow = sum(
        (amount for category, amount in totals.items() if category != CategoryType.INCOME),
        ZERO,
    )
    return income - outflow


def total_goals_saved(goals: Iterable[SavingsGoal]) -> Decimal:
    return sum((goal.current_amount for goal in goals), ZERO)


def used_card_names(state: LedgerState) -> list[str]:
    """Card names referenced by any installment purchase or stored row."""
    names = []
    seen = set()

    def add(name):
        if name and name not in seen:
            seen.add(name)
            names.append(name)

    for purchase in state.installment_purchases:
        add(purchase.card_name)
    for budget in state.budgets.values():
        for entry in budget.entries:
            add(entry.card_name)
    return names


def monthly_trend(
    budgets: dict[str, MonthlyBudget],
    month: str,
    months: int = 6,
) -> list[dict]:
    """
    Income vs. expense for the `months` months ending at `month`.

    Uses persisted rows only (synthetic entries are not stored), skipping
    tombstones. Savings are neither income nor expense here.
    """
    trend = []
    for key in previous_months(month, months):
        income = ZERO
        expense = ZERO
        budget = budgets.get(key)
        for entry in budget.entries if budget else []:
            if entry.deleted:
                continue
            if entry.category == CategoryType.INCOME:
                income += entry.amount
            elif entry.category != CategoryType.SAVINGS:
                expense += entry.amount
        trend.append({"month": key, "income": income, "expense": expense})
    return trend


def budget_usage(
    totals: dict[CategoryType, Decimal],
    category_budgets: dict[CategoryType, Decimal],
) -> dict[CategoryType, dict]:
    """Spent vs. planned per category that has a planned amount."""
    usage = {}
    for category, planned in category_budgets.items():
        spent = totals.get(category, ZERO)
        usage[category] = {
            "planned": planned,
            "spent": spent,
            "remaining": planned - spent,
            "over_budget": spent > planned,
        }
    return usage
