"""
Installment Amortization

Turns the installment catalog into the quotas due in one month.

A purchase with start month S and N installments contributes to month M
iff 0 <= months_between(S, M) < N. The quota amount is total / N for
every month in the window; there is no interest recalculation.
"""

from typing import Iterable, Optional

import structlog

from nexus_finance.ledger.ids import installment_entry_id
from nexus_finance.ledger.periods import month_start, months_between
from nexus_finance.models.budget import (
    BudgetEntry,
    InstallmentPurchase,
    PaymentMethod,
    TransactionStatus,
)


logger = structlog.get_logger(__name__)


def resolve_card(card_name: Optional[str], credit_cards: list[str]) -> Optional[str]:
    """
    Card an unlabelled credit item belongs to.

    With exactly one configured card that card is implied; otherwise the
    item stays unassigned and the aggregator uses its default label.
    """
    if card_name:
        return card_name
    if len(credit_cards) == 1:
        return credit_cards[0]
    return None


def installment_window(purchase: InstallmentPurchase, month: str) -> Optional[int]:
    """
    Zero-based installment index of `month`, or None outside the window.

    Purchases with a non-positive installment count have no window.
    """
    if not purchase.is_valid:
        return None
    elapsed = months_between(purchase.start_date, month)
    if 0 <= elapsed < purchase.installments:
        return elapsed
    return None


def derive_installment_entry(
    purchase: InstallmentPurchase,
    month: str,
    elapsed: int,
    credit_cards: list[str],
) -> BudgetEntry:
    current = elapsed + 1
    return BudgetEntry(
        id=installment_entry_id(purchase.id, month),
        name=f"{purchase.name} (Installment {current}/{purchase.installments})",
        amount=purchase.installment_amount,
        category=purchase.category,
        tag=purchase.tag,
        entry_date=month_start(month),
        status=TransactionStatus.PENDING,
        payment_method=PaymentMethod.CREDIT,
        card_name=resolve_card(purchase.card_name, credit_cards),
        installment_ref=purchase.id,
        current_installment=current,
        total_installments=purchase.installments,
    )


def resolve_installments(
    month: str,
    purchases: Iterable[InstallmentPurchase],
    credit_cards: Optional[list[str]] = None,
    suppressed_ids: Optional[set[str]] = None,
) -> list[BudgetEntry]:
    """
    Installment quotas due in `month`, one per purchase whose window covers it.

    Args:
        month: Target month (YYYY-MM)
        purchases: The installment catalog
        credit_cards: Configured card names, for the single-card fallback
        suppressed_ids: Ids that already exist as persisted rows this month
            (materialized copies or tombstones); those are not regenerated

    Returns:
        Derived entries in catalog order
    """
    credit_cards = credit_cards or []
    suppressed_ids = suppressed_ids or set()
    derived = []

    for purchase in purchases:
        if not purchase.is_valid:
            logger.debug(
                "installment_purchase_skipped",
                purchase_id=purchase.id,
                installments=purchase.installments,
            )
            continue

        elapsed = installment_window(purchase, month)
        if elapsed is None:
            continue

        entry_id = installment_entry_id(purchase.id, month)
        if entry_id in suppressed_ids:
            continue

        derived.append(derive_installment_entry(purchase, month, elapsed, credit_cards))

    return derived


def installment_progress(purchase: InstallmentPurchase, month: str) -> dict:
    """
    How far along a purchase is as of `month`.

    Returns installments paid (clamped to [0, N]), remaining count and
    percent complete.
    """
    if not purchase.is_valid:
        return {"paid": 0, "remaining": 0, "percent": 0.0}
    elapsed = months_between(purchase.start_date, month)
    paid = min(purchase.installments, max(0, elapsed + 1))
    return {
        "paid": paid,
        "remaining": purchase.installments - paid,
        "percent": round(paid / purchase.installments * 100, 2),
    }
