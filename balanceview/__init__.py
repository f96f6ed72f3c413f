"""
BalanceView - Source Package

A personal budgeting assistant: record monthly income and bills,
see what is left over, and ask for advice on the result.

DESIGN PRINCIPLES:
1. Every month is its own ledger bucket, keyed by "YYYY-MM"
2. Writes never block the user
3. Bad input is normalised, not thrown back at the user
4. Legacy data is migrated only when the user asks, and atomically
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "BalanceView Team"
