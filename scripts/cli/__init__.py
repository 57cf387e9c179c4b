"""
Ledger CLI -- run ledger operations from a shell.

Each command maps onto one ``LedgerOperations`` method and prints the JSON
body it returns.

Entry point: python -m scripts.cli
"""

from scripts.cli.main import main

__all__ = ["main"]
