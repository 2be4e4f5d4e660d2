"""
Data Models Package

This package contains all Pydantic models used in Nexus Finance.
All data flowing through the ledger must conform to these schemas.
"""

from nexus_finance.models.budget import (
    DEFAULT_CATEGORY_TAGS,
    AppConfig,
    BudgetEntry,
    CategoryType,
    InstallmentPurchase,
    LedgerState,
    MonthlyBudget,
    ParsedItem,
    ParsingResult,
    PaymentMethod,
    SavingsGoal,
    TransactionStatus,
)
from nexus_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_CATEGORY_TAGS",
    "AppConfig",
    "BudgetEntry",
    "CategoryType",
    "InstallmentPurchase",
    "LedgerState",
    "MonthlyBudget",
    "ParsedItem",
    "ParsingResult",
    "PaymentMethod",
    "SavingsGoal",
    "TransactionStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
