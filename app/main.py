"""
Streamlit Frontend for Nexus Finance

The monthly ledger view. Every page works on an explicit month; the
ledger is re-materialized after each mutation.

DESIGN PRINCIPLES:
1. The materialized month is the only thing rendered
2. Card rollups expand to show their members
3. Storage errors are shown, never hidden
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from nexus_finance.config import get_settings, validate_all_settings
from nexus_finance.ledger.amortization import installment_progress
from nexus_finance.ledger.periods import add_months, month_of
from nexus_finance.models.budget import CategoryType
from nexus_finance.orchestrator import BudgetFlow, create_budget_flow
from nexus_finance.queries import (
    budget_usage,
    category_totals,
    monthly_trend,
    net_flow,
    total_goals_saved,
    used_card_names,
)
from nexus_finance.services.storage import PersistenceError


st.set_page_config(
    page_title="Nexus Finance",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_flow() -> BudgetFlow:
    """Get or create the budget flow (cached)."""
    return run_async(create_budget_flow())


def format_money(amount: Decimal, currency: str) -> str:
    return f"{currency} {amount:,.2f}"


def main():
    """Main application entry point."""
    flow = get_flow()

    st.sidebar.title("💰 Nexus Finance")
    st.sidebar.markdown("---")

    if "month" not in st.session_state:
        st.session_state.month = month_of(date.today())

    col1, col2 = st.sidebar.columns(2)
    with col1:
        if st.button("◀ Previous"):
            st.session_state.month = add_months(st.session_state.month, -1)
            st.rerun()
    with col2:
        if st.button("Next ▶"):
            st.session_state.month = add_months(st.session_state.month, 1)
            st.rerun()
    st.sidebar.markdown(f"**Month:** {st.session_state.month}")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📒 Ledger", "💳 Cards", "⚙️ Settings"],
        index=0,
    )

    if page == "📒 Ledger":
        render_ledger_page(flow, st.session_state.month)
    elif page == "💳 Cards":
        render_cards_page(flow, st.session_state.month)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_ledger_page(flow: BudgetFlow, month: str):
    """Render the materialized month grouped by category."""
    st.title(f"📒 Ledger {month}")
    currency = flow.state.config.currency
    entries = flow.materialize(month)

    totals = category_totals(entries)
    usage = budget_usage(totals, flow.state.category_budgets)
    col1, col2 = st.columns(2)
    with col1:
        st.metric("Net flow", format_money(net_flow(totals), currency))
    with col2:
        st.metric("Saved in goals", format_money(total_goals_saved(flow.state.goals), currency))

    for category in CategoryType:
        group = [entry for entry in entries if entry.category == category]
        if not group:
            continue

        st.subheader(
            f"{category.value.replace('_', ' ').title()} "
            f"({format_money(totals[category], currency)})"
        )
        if category in usage:
            planned = usage[category]
            st.caption(
                f"Planned {format_money(planned['planned'], currency)}, "
                f"remaining {format_money(planned['remaining'], currency)}"
            )
            if planned["over_budget"]:
                st.warning("Over budget")
        for index, entry in enumerate(group):
            render_entry_row(flow, month, group, index, currency)

    st.markdown("---")
    st.subheader("📈 Income vs. expense")
    trend = monthly_trend(
        flow.state.budgets, month, months=get_settings().ledger.trend_months
    )
    st.bar_chart(
        {
            "income": [float(point["income"]) for point in trend],
            "expense": [float(point["expense"]) for point in trend],
        }
    )
    st.caption(" · ".join(point["month"] for point in trend))


def render_entry_row(flow: BudgetFlow, month: str, group: list, index: int, currency: str):
    entry = group[index]
    col1, col2, col3, col4, col5 = st.columns([5, 2, 1, 1, 1])

    with col1:
        if entry.sub_entries:
            with st.expander(entry.name):
                for sub_entry in entry.sub_entries:
                    st.markdown(
                        f"- {sub_entry.name}: {format_money(sub_entry.amount, currency)}"
                    )
        else:
            st.markdown(entry.name)
    with col2:
        st.markdown(format_money(entry.amount, currency))
    with col3:
        if index > 0 and st.button("↑", key=f"up-{entry.id}"):
            reordered = list(group)
            reordered[index - 1], reordered[index] = reordered[index], reordered[index - 1]
            apply_mutation(flow.reorder_entries(month, reordered))
    with col4:
        if index < len(group) - 1 and st.button("↓", key=f"down-{entry.id}"):
            reordered = list(group)
            reordered[index], reordered[index + 1] = reordered[index + 1], reordered[index]
            apply_mutation(flow.reorder_entries(month, reordered))
    with col5:
        if st.button("🗑", key=f"delete-{entry.id}"):
            apply_mutation(flow.delete_entry(month, entry.id))


def render_cards_page(flow: BudgetFlow, month: str):
    """Installment progress and card renaming."""
    st.title("💳 Cards")

    for purchase in flow.state.installment_purchases:
        progress = installment_progress(purchase, month)
        st.markdown(
            f"**{purchase.name}** ({purchase.card_name or '-'}): "
            f"{progress['paid']}/{purchase.installments} paid"
        )
        st.progress(progress["percent"] / 100)

    names = used_card_names(flow.state)
    if not names:
        st.info("No card is used by any entry or installment purchase yet.")
        return

    with st.form("rename_cards"):
        renames = {}
        for name in names:
            new_name = st.text_input(name, value=name, key=f"card-{name}")
            if new_name.strip() and new_name.strip() != name:
                renames[name] = new_name.strip()

        if st.form_submit_button("Save", type="primary"):
            changed = apply_mutation(flow.rename_cards(renames), rerun=False)
            if changed is not None:
                st.success(f"Updated {changed} rows")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    for name, key in [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Ledger", "ledger"),
        ("Application", "app"),
    ]:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")


def apply_mutation(coro, rerun: bool = True):
    """Run a flow mutation; show storage failures instead of crashing."""
    try:
        result = run_async(coro)
    except PersistenceError as e:
        st.error(f"Could not save ({e.operation}): {e}")
        return None
    if rerun:
        st.rerun()
    return result


if __name__ == "__main__":
    main()
