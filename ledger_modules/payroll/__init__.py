"""
Payroll Module (``ledger_modules.payroll``).

Payroll entries per employee, posted to the ledger as EXPENSE lines.
"""

from ledger_modules.payroll.models import (
    EmployeePay,
    PayrollEntry,
    PayrollPostingResult,
    PeriodType,
)
from ledger_modules.payroll.service import PayrollService

__all__ = [
    "EmployeePay",
    "PayrollEntry",
    "PayrollPostingResult",
    "PayrollService",
    "PeriodType",
]
