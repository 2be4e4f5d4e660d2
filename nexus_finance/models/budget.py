"""
Core Data Models for Nexus Finance

These models define the schemas for every record the ledger reads or writes.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

Money is always Decimal. Ids are plain strings because synthetic entries
use a readable, deterministic id scheme (see ledger.ids).
"""

import re
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# Tolerance when checking amount == original_amount * rate
CONVERSION_TOLERANCE = Decimal("0.01")


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class CategoryType(str, Enum):
    """
    Budget categories.

    The category decides the sign of an entry: income adds to the
    monthly net flow, every other category subtracts from it.
    """
    INCOME = "income"
    FIXED_EXPENSE = "fixed_expense"
    VARIABLE_EXPENSE = "variable_expense"
    DEBT = "debt"
    SAVINGS = "savings"


class TransactionStatus(str, Enum):
    """Payment status of an entry."""
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


class PaymentMethod(str, Enum):
    """How an entry was (or will be) paid."""
    CASH = "cash"
    DEBIT = "debit"
    CREDIT = "credit"
    TRANSFER = "transfer"
    FIXED_TERM = "fixed_term"
    INVESTMENT = "investment"


DEFAULT_CATEGORY_TAGS: dict[CategoryType, list[str]] = {
    CategoryType.INCOME: [
        "Salary", "Bonus", "Extras", "Sales", "Investments", "Gifts",
    ],
    CategoryType.FIXED_EXPENSE: [
        "Rent / Mortgage", "Building Fees", "Utilities", "Internet",
        "Phone", "TV / Streaming", "School", "Car Payment", "Insurance",
        "Health Plan", "Taxes", "Gym", "Parking", "Vehicle Tax",
    ],
    CategoryType.VARIABLE_EXPENSE: [
        "Groceries", "Food / Delivery", "Going Out", "Transport / Fuel",
        "Pharmacy / Health", "Clothing", "Home Maintenance", "Pets",
        "Gifts", "Personal Care", "Sports", "Education", "Vacation",
        "Miscellaneous",
    ],
    CategoryType.DEBT: ["Personal Loan", "Credit Card", "Family Debt"],
    CategoryType.SAVINGS: [
        "Emergency Fund", "Dollar Savings", "Investments", "Vacation",
        "New Car",
    ],
}


def validate_month(value: str) -> str:
    """Check a YYYY-MM month key."""
    if not MONTH_PATTERN.match(value):
        raise ValueError(f"Month must be formatted as YYYY-MM, got {value!r}")
    return value


# =============================================================================
# CORE LEDGER MODELS
# =============================================================================

class BudgetEntry(BaseModel):
    """
    A single financial movement in a month.

    Manual entries are created by the user (or by AI import). Synthetic
    entries (installment quotas and card rollups) are computed on every
    materialization and only become rows when the user edits, reorders
    or deletes one.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Non-negative; the category decides the sign"
    )
    category: CategoryType
    tag: str = Field(default="")
    entry_date: date
    status: TransactionStatus = TransactionStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.CASH

    card_name: Optional[str] = Field(
        default=None,
        description="Only meaningful when payment_method is CREDIT"
    )
    financing_plan: Optional[str] = None

    # Installment linkage
    installment_ref: Optional[str] = None
    current_installment: Optional[int] = Field(default=None, ge=1)
    total_installments: Optional[int] = Field(default=None, ge=1)

    order: Optional[int] = None
    sub_entries: Optional[list["BudgetEntry"]] = None
    deleted: bool = False

    goal_id: Optional[str] = None
    maturity_date: Optional[date] = None

    # Foreign currency
    original_amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, max_length=3)
    exchange_rate_estimated: Optional[Decimal] = Field(default=None, gt=0)
    exchange_rate_actual: Optional[Decimal] = Field(default=None, gt=0)

    @property
    def exchange_rate(self) -> Optional[Decimal]:
        """The actual rate when known, the estimate otherwise."""
        if self.exchange_rate_actual is not None:
            return self.exchange_rate_actual
        return self.exchange_rate_estimated

    @property
    def is_credit_like(self) -> bool:
        """Credit entries, installment quotas and rollups sort first."""
        return (
            self.payment_method == PaymentMethod.CREDIT
            or bool(self.installment_ref)
            or bool(self.sub_entries)
        )

    @property
    def remaining_installments(self) -> Optional[int]:
        if not self.total_installments:
            return None
        return self.total_installments - (self.current_installment or 0)

    @model_validator(mode='after')
    def validate_conversion(self) -> 'BudgetEntry':
        """amount must match original_amount converted at the best known rate."""
        rate = self.exchange_rate
        if self.original_amount is not None and rate is not None:
            expected = self.original_amount * rate
            if abs(self.amount - expected) > CONVERSION_TOLERANCE:
                raise ValueError(
                    f"Amount {self.amount} does not match "
                    f"{self.original_amount} x {rate} = {expected}"
                )
        return self


class InstallmentPurchase(BaseModel):
    """
    A purchase financed over N monthly installments.

    The per-month amount is total_amount / installments and never changes.
    The installment count is not bounded here: rows loaded from storage
    with a bad count must still reach the resolver, which skips them.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str
    total_amount: Decimal = Field(..., ge=0)
    installments: int
    start_date: str = Field(..., description="First installment month (YYYY-MM)")
    category: CategoryType = CategoryType.FIXED_EXPENSE
    tag: str = ""
    card_name: Optional[str] = None

    @field_validator('start_date')
    @classmethod
    def validate_start_date(cls, v: str) -> str:
        return validate_month(v)

    @property
    def is_valid(self) -> bool:
        return self.installments >= 1

    @property
    def installment_amount(self) -> Decimal:
        return self.total_amount / self.installments


class SavingsGoal(BaseModel):
    """A named savings target with an incrementally maintained balance."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str
    target_amount: Decimal = Field(default=Decimal("0"), ge=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: Optional[str] = None
    icon: str = "piggy-bank"

    @field_validator('deadline')
    @classmethod
    def validate_deadline(cls, v: Optional[str]) -> Optional[str]:
        return validate_month(v) if v else v

    @property
    def progress(self) -> float:
        if not self.target_amount:
            return 0.0
        return min(1.0, float(self.current_amount / self.target_amount))


class MonthlyBudget(BaseModel):
    """The persisted manual rows of one month. Created lazily on first write."""

    month: str
    entries: list[BudgetEntry] = Field(default_factory=list)

    @field_validator('month')
    @classmethod
    def validate_month_key(cls, v: str) -> str:
        return validate_month(v)

    def find(self, entry_id: str) -> Optional[BudgetEntry]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None


class AppConfig(BaseModel):
    """Per-user configuration."""

    currency: str = "ARS"
    user_name: str = ""
    categories: dict[CategoryType, list[str]] = Field(
        default_factory=lambda: {
            category: list(tags)
            for category, tags in DEFAULT_CATEGORY_TAGS.items()
        }
    )
    credit_cards: list[str] = Field(default_factory=list)


class LedgerState(BaseModel):
    """
    Everything one session needs to materialize any month.

    Budgets are keyed by month (YYYY-MM).
    """

    budgets: dict[str, MonthlyBudget] = Field(default_factory=dict)
    goals: list[SavingsGoal] = Field(default_factory=list)
    installment_purchases: list[InstallmentPurchase] = Field(default_factory=list)
    category_budgets: dict[CategoryType, Decimal] = Field(default_factory=dict)
    config: AppConfig = Field(default_factory=AppConfig)

    def month_entries(self, month: str) -> list[BudgetEntry]:
        budget = self.budgets.get(month)
        return list(budget.entries) if budget else []

    def ensure_month(self, month: str) -> MonthlyBudget:
        if month not in self.budgets:
            self.budgets[month] = MonthlyBudget(month=month)
        return self.budgets[month]

    def find_goal(self, goal_id: str) -> Optional[SavingsGoal]:
        for goal in self.goals:
            if goal.id == goal_id:
                return goal
        return None


# =============================================================================
# AI IMPORT MODELS
# =============================================================================

class ParsedItem(BaseModel):
    """One line item returned by the document parser."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0)
    category: CategoryType
    tag: str = ""


class ParsingResult(BaseModel):
    """Everything the document parser extracted from one upload."""

    items: list[ParsedItem] = Field(default_factory=list)
