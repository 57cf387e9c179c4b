"""
ledger_services -- wire-shaped operations over the ledger modules.

Transports (the CLI, an HTTP handler, a chat webhook) call
``LedgerOperations`` and never the module services directly.
"""

from ledger_services.operations import LedgerOperations, OperationResult, error_body
from ledger_services.wire import encode_value, to_wire

__all__ = [
    "LedgerOperations",
    "OperationResult",
    "encode_value",
    "error_body",
    "to_wire",
]
