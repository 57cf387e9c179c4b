"""
Ledger Kernel - cash ledger posting core

An append-only cash ledger for a restaurant point-of-sale back office with:
- Sequential, gap-safe transaction codes (PCS000001) and batch codes (RMB001)
- Atomic all-or-nothing posting
- Immutable ledger entries
- Fixed-precision decimal handling (quantity 4dp, money 2dp)
"""

__version__ = "0.1.0"
