"""
CoinPilot - Recurring Expense Engine

Tracks fixed recurring obligations (rent, subscriptions, loans) and
derives the figures a personal budget needs from them: monthly
equivalents, pending and paid totals, and the next payment date.

DESIGN PRINCIPLES:
1. The engine decides → the service persists → subscribers refresh
2. Fail early, fail visibly
3. No silent corrections
4. Every persisted change must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "CoinPilot Team"
