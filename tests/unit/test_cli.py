"""
Unit tests for the command line interface.
"""
import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from pricelist_engine.cli import cli, load_content
from pricelist_engine.models.domain import PdfContent


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def wide_console():
    """Render rich tables without wrapping so assertions see whole cells"""
    with patch("pricelist_engine.cli.console", Console(width=200)):
        yield


@pytest.fixture
def table_file(tmp_path, table_pdf_content):
    path = tmp_path / "denon.txt"
    path.write_text("\n".join(table_pdf_content.lines), encoding="utf-8")
    return path


@pytest.fixture
def spreadsheet_file(tmp_path, spreadsheet_content):
    path = tmp_path / "nology.json"
    path.write_text(spreadsheet_content.model_dump_json(), encoding="utf-8")
    return path


class TestLoadContent:
    def test_text_becomes_pdf_lines(self, table_file):
        content = load_content(table_file)

        assert isinstance(content, PdfContent)
        assert len(content.lines) == 6

    def test_json_is_passed_through(self, spreadsheet_file):
        content = load_content(spreadsheet_file)

        assert content["kind"] == "spreadsheet"


class TestCommands:
    """Test CLI commands end to end with the in-memory store"""

    def test_info(self, runner):
        result = runner.invoke(cli, ["info"])

        assert result.exit_code == 0
        assert "Configuration Status" in result.output
        assert "Supplier Pricelist Engine" in result.output

    def test_classify_text(self, runner, table_file):
        result = runner.invoke(cli, ["classify", str(table_file)])

        assert result.exit_code == 0
        assert "structured_table" in result.output

    def test_classify_json_spreadsheet(self, runner, spreadsheet_file):
        result = runner.invoke(cli, ["classify", str(spreadsheet_file)])

        assert result.exit_code == 0
        assert "multi_price_columns" in result.output

    def test_extract_writes_result(self, runner, table_file, tmp_path):
        output = tmp_path / "result.json"

        result = runner.invoke(cli, ["extract", str(table_file), "--supplier", "denon", "-o", str(output)])

        assert result.exit_code == 0
        assert "6 products" in result.output
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["supplier_key"] == "denon"
        assert data["extraction"]["extraction_method"] == "two_price_pdf"
        assert len(data["extraction"]["products"]) == 6

    def test_extract_limit(self, runner, table_file):
        result = runner.invoke(cli, ["extract", str(table_file), "-s", "denon", "--limit", "2"])

        assert result.exit_code == 0
        assert "and 4 more products" in result.output

    def test_extract_unsupported_content(self, runner, tmp_path):
        path = tmp_path / "fax.json"
        path.write_text(json.dumps({"kind": "fax"}), encoding="utf-8")

        result = runner.invoke(cli, ["extract", str(path), "-s", "acme"])

        assert result.exit_code == 1
        assert "Extraction failed" in result.output

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["classify", str(tmp_path / "missing.txt")])

        assert result.exit_code == 2

    def test_templates(self, runner):
        result = runner.invoke(cli, ["templates"])

        assert result.exit_code == 0
        assert "generic-pdf" in result.output
        assert "generic-spreadsheet" in result.output

    def test_templates_for_supplier(self, runner):
        result = runner.invoke(cli, ["templates", "--supplier", "denon"])

        assert result.exit_code == 0
        assert "generic-pdf" not in result.output
