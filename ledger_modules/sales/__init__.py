"""
Sales Module (``ledger_modules.sales``).

Daily sales summaries per (date, channel, payment method, outlet), entered
manually or aggregated from POS payments, posted to the ledger as SALES.
"""

from ledger_modules.sales.models import (
    SalesDailySummary,
    SalesPostingResult,
    SalesSource,
    SalesSummaryKey,
    SalesSyncResult,
)
from ledger_modules.sales.pos_source import (
    JsonPosSalesSource,
    PosSalesEvent,
    PosSalesSource,
    StaticPosSalesSource,
)
from ledger_modules.sales.service import SalesService

__all__ = [
    "JsonPosSalesSource",
    "PosSalesEvent",
    "PosSalesSource",
    "SalesDailySummary",
    "SalesPostingResult",
    "SalesService",
    "SalesSource",
    "SalesSummaryKey",
    "SalesSyncResult",
    "StaticPosSalesSource",
]
