"""
Import every ORM model so ``Base.metadata`` knows all tables.

Called by ``ledger_kernel.db.engine.create_tables`` and by test setup.
"""


def import_all_orm_models() -> None:
    import ledger_kernel.models.cash_transaction  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401
    import ledger_modules.payroll.orm  # noqa: F401
    import ledger_modules.reimbursement.orm  # noqa: F401
    import ledger_modules.sales.orm  # noqa: F401
