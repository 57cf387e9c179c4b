"""Kernel ORM models."""

from ledger_kernel.models.cash_transaction import CashTransaction

__all__ = ["CashTransaction"]
