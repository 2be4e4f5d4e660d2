"""Ledger summaries package."""

from nexus_finance.queries.summary import (
    budget_usage,
    category_totals,
    monthly_trend,
    net_flow,
    total_goals_saved,
    used_card_names,
)

__all__ = [
    "budget_usage",
    "category_totals",
    "monthly_trend",
    "net_flow",
    "total_goals_saved",
    "used_card_names",
]
