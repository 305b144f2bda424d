"""
Unit tests for per-sheet spreadsheet signals.
"""
from decimal import Decimal

from pricelist_engine.layout.spreadsheet_analysis import (
    analyze_sheet,
    as_number,
    detect_headers,
    empty_ratio,
    identify_primary_sheet,
    in_price_range,
    row_consistency,
)


class TestCellHelpers:
    def test_as_number(self):
        assert as_number("1,250") == 1250.0
        assert as_number(Decimal("9.5")) == 9.5
        assert as_number(7) == 7.0
        assert as_number("abc") is None
        assert as_number(True) is None
        assert as_number(None) is None

    def test_empty_ratio(self):
        assert empty_ratio([["a", None], ["", "b"]]) == 0.5
        assert empty_ratio([]) == 1.0

    def test_row_consistency(self):
        assert row_consistency([["a"]]) == 0.0
        assert row_consistency([["a", "b"], ["c", "d"]]) == 1.0

    def test_price_range_bounds_are_inclusive(self):
        assert in_price_range(1.0)
        assert in_price_range(1_000_000.0)
        assert not in_price_range(0.5)
        assert not in_price_range(1_000_000.5)


class TestHeaderDetection:
    def test_keyword_header_row(self, spreadsheet_content):
        headers = detect_headers(spreadsheet_content.sheets["Prices"])

        assert headers.detected is True
        assert headers.row == 0
        assert headers.confidence == 1.0

    def test_best_row_within_first_five(self):
        rows = [["Acme Audio"], ["Pricelist March"], ["Product", "Code", "Price"], ["SA-150", "X1", 100]]

        headers = detect_headers(rows)

        assert headers.row == 2

    def test_no_headers(self):
        headers = detect_headers([["Bookshelf Speaker Pair", 2499], ["Floorstanding Speaker", 8999]])

        assert headers.detected is False
        assert headers.row == -1


class TestSheetAnalysis:
    """Test full sheet analysis"""

    def test_price_and_product_columns(self, spreadsheet_content):
        analysis = analyze_sheet("Prices", spreadsheet_content.sheets["Prices"])

        assert sorted(signal.column for signal in analysis.price_columns) == [1, 2]
        assert analysis.product_columns[0].column == 0
        assert analysis.data_structure.has_product_data is True
        assert analysis.empty_ratio == 0.0
        assert analysis.consistency == 1.0
        assert analysis.data_start_row == 1

    def test_primary_sheet_prefers_price_data(self, spreadsheet_content):
        notes = analyze_sheet("Notes", [["Read me"]])
        prices = analyze_sheet("Prices", spreadsheet_content.sheets["Prices"])

        assert identify_primary_sheet([notes, prices]) is prices
        assert identify_primary_sheet([]) is None
