"""
Savings Goal Ledger

A goal's balance is the sum of its linked, non-deleted entries, clamped at
zero. It is maintained incrementally by the mutation flow rather than
recomputed on every read; reconcile_goal_balance() recomputes it from
scratch for checks.

Goal ids that no longer resolve are skipped: a goal can be deleted while
an entry still points at it.
"""

from decimal import Decimal
from typing import Iterable, Optional

import structlog

from nexus_finance.models.budget import BudgetEntry, MonthlyBudget, SavingsGoal


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def apply_goal_delta(goal: SavingsGoal, delta: Decimal) -> SavingsGoal:
    """Return a copy of `goal` with `delta` applied, clamped at zero."""
    return goal.model_copy(
        update={"current_amount": max(ZERO, goal.current_amount + delta)}
    )


def goal_adjustments(
    goals: Iterable[SavingsGoal],
    old_entry: Optional[BudgetEntry],
    new_entry: Optional[BudgetEntry],
) -> dict[str, SavingsGoal]:
    """
    Updated goal copies for replacing `old_entry` with `new_entry`.

    The old entry's amount is reverted first, then the new one applied,
    each step clamped at zero. Pass new_entry=None for a deletion.
    Deleted rows (tombstones) hold no balance, so they are neither
    reverted nor applied.
    Returns only the goals that changed, keyed by id.
    """
    by_id = {goal.id: goal for goal in goals}
    updated: dict[str, SavingsGoal] = {}

    def current(goal_id: str) -> Optional[SavingsGoal]:
        if goal_id in updated:
            return updated[goal_id]
        goal = by_id.get(goal_id)
        if goal is None:
            logger.warning("goal_not_found", goal_id=goal_id)
        return goal

    if old_entry is not None and old_entry.goal_id and not old_entry.deleted:
        goal = current(old_entry.goal_id)
        if goal is not None:
            updated[goal.id] = apply_goal_delta(goal, -old_entry.amount)

    if new_entry is not None and new_entry.goal_id and not new_entry.deleted:
        goal = current(new_entry.goal_id)
        if goal is not None:
            updated[goal.id] = apply_goal_delta(goal, new_entry.amount)

    return updated


def reconcile_goal_balance(
    goal: SavingsGoal,
    budgets: Iterable[MonthlyBudget],
) -> Decimal:
    """Recompute a goal's balance from every linked, non-deleted row."""
    total = sum(
        (
            entry.amount
            for budget in budgets
            for entry in budget.entries
            if entry.goal_id == goal.id and not entry.deleted
        ),
        ZERO,
    )
    return max(ZERO, total)
