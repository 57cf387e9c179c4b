"""
Expense intake (``ledger_intake``).

Free-text expense messages in, Draft reimbursement requests out.
"""

from ledger_intake.matcher import InventoryItem, ItemMatcher, MatchResult, MatchStatus, StaticItemCatalog
from ledger_intake.parser import DraftExpenseItem, ExpenseMessageParser, ParsedMessage, parse_message

__all__ = [
    "DraftExpenseItem",
    "ExpenseMessageParser",
    "InventoryItem",
    "ItemMatcher",
    "MatchResult",
    "MatchStatus",
    "ParsedMessage",
    "StaticItemCatalog",
    "parse_message",
]
