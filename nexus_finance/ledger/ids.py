"""
Deterministic ids for synthetic entries.

Synthetic entries are recomputed on every materialization, so their ids
must be a pure function of what produced them:

    inst-<purchase id>-<YYYY-MM>
    card-agg-<NORMALIZED CARD>-<category>-<YYYY-MM>

A persisted row carrying one of these ids is an override (order or
tombstone) for that exact month's synthetic item.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from nexus_finance.models.budget import CategoryType


INSTALLMENT_PREFIX = "inst-"
ROLLUP_PREFIX = "card-agg-"

_SYNTHETIC_PATTERN = re.compile(
    r"^(?P<prefix>inst-|card-agg-)(?P<key>.+)-(?P<month>\d{4}-(0[1-9]|1[0-2]))$"
)


class SyntheticKind(str, Enum):
    INSTALLMENT = "installment"
    ROLLUP = "rollup"


@dataclass(frozen=True)
class SyntheticId:
    """A parsed synthetic id."""
    kind: SyntheticKind
    key: str
    month: str


def normalize_card_name(card_name: str) -> str:
    """Grouping key for a card: casing and surrounding spaces are ignored."""
    return card_name.strip().upper()


def installment_entry_id(purchase_id: str, month: str) -> str:
    return f"{INSTALLMENT_PREFIX}{purchase_id}-{month}"


def rollup_group_key(card_name: str, category: CategoryType) -> str:
    return f"{normalize_card_name(card_name)}-{category.value}"


def rollup_entry_id(group_key: str, month: str) -> str:
    return f"{ROLLUP_PREFIX}{group_key}-{month}"


def has_synthetic_prefix(entry_id: str) -> bool:
    return entry_id.startswith(INSTALLMENT_PREFIX) or entry_id.startswith(ROLLUP_PREFIX)


def is_rollup_id(entry_id: str) -> bool:
    return entry_id.startswith(ROLLUP_PREFIX)


def parse_synthetic_id(entry_id: str) -> Optional[SyntheticId]:
    """
    Parse a synthetic id.

    Returns None for ordinary ids and for malformed synthetic ids
    (right prefix, no trailing month).
    """
    match = _SYNTHETIC_PATTERN.match(entry_id)
    if not match:
        return None
    kind = (
        SyntheticKind.ROLLUP
        if match.group("prefix") == ROLLUP_PREFIX
        else SyntheticKind.INSTALLMENT
    )
    return SyntheticId(kind=kind, key=match.group("key"), month=match.group("month"))
