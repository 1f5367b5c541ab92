"""
Split Ledger - Source Package

The core of a shared-expense ledger: split a transaction among registered
users and guests, validate it, record who paid, and keep pairwise
balances between users up to date.

DESIGN PRINCIPLES:
1. Money is Decimal, rounded half-up to two places
2. A split set is either persisted whole or not at all
3. Best-effort side effects never fail the transaction
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Split Ledger Team"
