"""
Ledger modules: the workflows that feed the cash ledger.

- reimbursement: expense claims, batch grouping, batch posting
- sales: daily sales summaries (POS sync or manual) and their posting
- payroll: payroll entries and their posting
"""
