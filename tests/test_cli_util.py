"""Tests for CLI helpers: payload loading, item catalogs and result printing."""

import io
import json
from decimal import Decimal

import pytest

from ledger_intake.matcher import ItemMatcher, MatchStatus
from ledger_config import reset_active_config
from ledger_services.operations import LedgerOperations, OperationResult
from scripts.cli.main import COMMANDS, _parse_args, main
from scripts.cli.util import load_item_catalog, load_payload, print_result
from tests.conftest import GAS_ID

CATALOG_YAML = f"""
items:
  - id: {GAS_ID}
    code: GAS
    name: Gas LPG
    keywords: gas, elpiji, lpg
    unit: tabung
"""


class TestLoadPayload:
    def test_inline_keeps_decimals(self):
        assert load_payload('{"amount": 1.50}') == {"amount": Decimal("1.50")}

    def test_from_file(self, tmp_path):
        path = tmp_path / "body.json"
        path.write_text(json.dumps({"batch_id": "RMB001"}), encoding="utf-8")
        assert load_payload(f"@{path}") == {"batch_id": "RMB001"}

    def test_empty(self):
        assert load_payload(None) == {}

    def test_must_be_object(self):
        with pytest.raises(ValueError):
            load_payload("[1, 2]")


class TestLoadItemCatalog:
    def test_reads_items(self, tmp_path):
        path = tmp_path / "items.yaml"
        path.write_text(CATALOG_YAML, encoding="utf-8")
        catalog = load_item_catalog(path)

        result = ItemMatcher(catalog.list_items()).match("elpiji")
        assert result.status is MatchStatus.MATCHED
        assert result.item.id == GAS_ID

    def test_missing_name(self, tmp_path):
        path = tmp_path / "items.yaml"
        path.write_text(f"items:\n  - id: {GAS_ID}\n", encoding="utf-8")
        with pytest.raises(KeyError):
            load_item_catalog(path)


class TestPrintResult:
    def test_body_printed_as_json(self):
        out = io.StringIO()
        print_result(OperationResult(200, {"description": "Cabe Merah"}), stream=out)
        assert json.loads(out.getvalue()) == {"description": "Cabe Merah"}

    def test_no_content(self):
        out = io.StringIO()
        print_result(OperationResult(204, None), stream=out)
        assert out.getvalue().strip() == "status: 204"


class TestParseArgs:
    def test_command_and_target(self):
        args = _parse_args(["get-transaction", "PCS000001"])
        assert args.command == "get-transaction"
        assert args.target == "PCS000001"

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            _parse_args(["close-period"])

    def test_every_command_is_an_operation(self):
        for method_name, _ in COMMANDS.values():
            assert callable(getattr(LedgerOperations, method_name, None)), method_name

    def test_every_operation_has_a_command(self):
        public = {
            name for name in vars(LedgerOperations)
            if not name.startswith("_") and callable(getattr(LedgerOperations, name))
        }
        assert public == {method_name for method_name, _ in COMMANDS.values()}


class TestMainInputErrors:
    @pytest.fixture(autouse=True)
    def _fresh_active_config(self, tmp_path):
        reset_active_config()
        self.config_path = tmp_path / "ledger.yaml"
        self.config_path.write_text("log_level: INFO\n", encoding="utf-8")
        yield
        reset_active_config()

    def test_malformed_item_catalog(self, tmp_path, capsys):
        items = tmp_path / "items.yaml"
        items.write_text("items: [unclosed", encoding="utf-8")
        code = main([
            "submit-message", "--config", str(self.config_path),
            "--items", str(items), "--json", '{"message_text": "20 jan\\ngas 25k"}',
        ])
        assert code == 1
        assert "ERROR: Bad input" in capsys.readouterr().err

    def test_malformed_payload(self, capsys):
        code = main(["post-batch", "--config", str(self.config_path), "--json", "{not json"])
        assert code == 1
        assert "ERROR: Bad input" in capsys.readouterr().err

    def test_target_required(self, capsys):
        code = main(["delete-sales", "--config", str(self.config_path)])
        assert code == 1
        assert "needs a target id" in capsys.readouterr().err
