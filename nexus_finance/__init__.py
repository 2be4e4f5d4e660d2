"""
Nexus Finance - Source Package

A personal finance tracker built around a monthly ledger view that
reconciles manual entries, installment purchases and credit card
consumption into one ordered list.

DESIGN PRINCIPLES:
1. The monthly view is derived, never stored
2. User overrides are persisted under deterministic ids
3. Month is always an explicit argument
4. Storage failures are surfaced, never swallowed
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Nexus Finance Team"
