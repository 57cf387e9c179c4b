"""
Ledger command line: run one ledger operation and print its JSON result.

Usage:
    python -m scripts.cli <command> [--json PAYLOAD | --json @file.json] [options]

Examples:
    # Create the tables in the configured database
    python -m scripts.cli init-db

    # Preview how a chat message parses (nothing is stored)
    python -m scripts.cli parse-message --json '{"message_text": "20 jan\\ncabe 5kg 500k"}'

    # Submit a chat message, matching against an item catalog
    python -m scripts.cli submit-message --items items.yaml --json @message.json

    # Batch and pay reimbursements
    python -m scripts.cli assign-batch --json '{"ids": ["..."]}'
    python -m scripts.cli post-batch --json '{"batch_id": "RMB001", "payment_date": "2024-01-25", "cash_account_id": "..."}'

    # Pull POS sales from an export file, then post the day
    python -m scripts.cli sync-pos --events pos_events.json --json @sync.json
    python -m scripts.cli post-sales --json '{"sales_date": "2024-01-20", "account_id": "..."}'

Exit status is 0 when the operation succeeds and 1 otherwise.
"""

import argparse
import sys
from pathlib import Path

import yaml

from scripts.cli.util import (
    enable_quiet_logging,
    load_item_catalog,
    load_payload,
    print_result,
    restore_logging,
)

# command -> (LedgerOperations method, takes an id argument)
COMMANDS: dict[str, tuple[str, bool]] = {
    "parse-message": ("parse_message", False),
    "submit-message": ("submit_expense_message", False),
    "list-reimbursements": ("list_reimbursements", False),
    "get-reimbursement": ("get_reimbursement", True),
    "create-reimbursement": ("create_reimbursement", False),
    "update-reimbursement": ("update_reimbursement", True),
    "delete-reimbursement": ("delete_reimbursement", True),
    "assign-batch": ("assign_batch", False),
    "post-batch": ("post_batch", False),
    "list-sales": ("list_sales_summaries", False),
    "get-sales": ("get_sales_summary", True),
    "create-sales": ("create_sales_summary", False),
    "update-sales": ("update_sales_summary", True),
    "delete-sales": ("delete_sales_summary", True),
    "sync-pos": ("sync_pos", False),
    "post-sales": ("post_sales", False),
    "list-payroll": ("list_payroll_entries", False),
    "create-payroll": ("create_payroll_batch", False),
    "update-payroll": ("update_payroll_entry", True),
    "delete-payroll": ("delete_payroll_entry", True),
    "post-payroll": ("post_payroll", False),
    "list-transactions": ("list_transactions", False),
    "get-transaction": ("get_transaction", True),
}


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ledger",
        description="Run a ledger operation and print the JSON result.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "command",
        choices=sorted([*COMMANDS, "init-db"]),
        help="Operation to run.",
    )
    parser.add_argument(
        "target",
        nargs="?",
        default=None,
        help="Row id or transaction code for update/delete/get commands.",
    )
    parser.add_argument(
        "--json",
        dest="payload",
        default=None,
        help="Request body as inline JSON, or @path to read it from a file.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Ledger YAML config (default: $LEDGER_CONFIG_FILE or packaged ledger.yaml).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: database.url from config).",
    )
    parser.add_argument(
        "--items",
        type=Path,
        default=None,
        help="YAML item catalog used by submit-message.",
    )
    parser.add_argument(
        "--events",
        type=Path,
        default=None,
        help="POS event export (JSON array or JSON Lines) used by sync-pos.",
    )
    parser.add_argument(
        "--jsonl",
        action="store_true",
        help="Read --events as JSON Lines.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Keep structured logs on stderr.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from ledger_config import get_active_config
    from ledger_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
    from ledger_kernel.db.immutability import register_immutability_listeners
    from ledger_kernel.logging_config import configure_logging
    from ledger_modules.sales.pos_source import JsonPosSalesSource
    from ledger_services import LedgerOperations

    try:
        config = get_active_config(args.config) if args.config else get_active_config()
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    method_name, takes_target = COMMANDS.get(args.command, ("", False))
    if takes_target and not args.target:
        print(f"ERROR: {args.command} needs a target id", file=sys.stderr)
        return 1

    try:
        payload = load_payload(args.payload)
        catalog = load_item_catalog(args.items) if args.items else None
    except (OSError, ValueError, KeyError, yaml.YAMLError) as e:
        print(f"ERROR: Bad input: {e}", file=sys.stderr)
        return 1

    configure_logging(level=config.log_level)
    muted = [] if args.verbose else enable_quiet_logging()
    try:
        try:
            init_engine_from_url(
                args.db_url or config.database.url,
                echo=config.database.echo,
                pool_size=config.database.pool_size,
                max_overflow=config.database.max_overflow,
            )
        except Exception as e:
            print(f"ERROR: Database init failed: {e}", file=sys.stderr)
            return 1
        register_immutability_listeners()

        if args.command == "init-db":
            create_tables()
            print("tables created")
            return 0

        pos_source = None
        if args.events:
            pos_source = JsonPosSalesSource(args.events, fmt="jsonl" if args.jsonl else "array")

        ops = LedgerOperations(
            session_factory=get_session_factory(),
            config=config,
            catalog=catalog,
            pos_source=pos_source,
        )
        method = getattr(ops, method_name)
        if takes_target and method_name.startswith("update_"):
            result = method(args.target, payload)
        elif takes_target:
            result = method(args.target)
        else:
            result = method(payload)
    finally:
        restore_logging(muted)

    print_result(result, stream=sys.stdout if result.ok else sys.stderr)
    return 0 if result.ok else 1
