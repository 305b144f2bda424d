"""
Unit tests for the price vocabulary and text helpers.
"""
from decimal import Decimal

import pytest

from pricelist_engine.extraction.patterns import (
    clean_product_name,
    currency_code,
    extract_specifications,
    find_price_candidates,
    is_price_line,
    is_usable_name,
    looks_like_product_start,
    parse_price,
)
from pricelist_engine.models.domain import PriceKind


class TestParsePrice:
    """Test amount parsing across locale formats"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("R1,234.56", Decimal("1234.56")),
            ("1.234,56", Decimal("1234.56")),
            ("1234,56", Decimal("1234.56")),
            ("12,345", Decimal("12345")),
            (1250, Decimal("1250")),
            (19.99, Decimal("19.99")),
        ],
    )
    def test_formats(self, value, expected):
        assert parse_price(value) == expected

    @pytest.mark.parametrize("value", [None, True, "N/A", ""])
    def test_not_a_number(self, value):
        assert parse_price(value) is None


class TestCurrencyCode:
    def test_known_symbols(self):
        assert currency_code("R") == "ZAR"
        assert currency_code("$") == "USD"
        assert currency_code("€") == "EUR"

    def test_default_when_missing(self):
        assert currency_code(None) == "ZAR"
        assert currency_code(None, "USD") == "USD"


class TestFindPriceCandidates:
    """Test labelled and unlabelled price detection"""

    def test_labelled_rrp(self):
        candidates = find_price_candidates("Bookshelf Speaker BS100 RRP: R2,499.00")

        assert len(candidates) == 1
        assert candidates[0].price_kind == PriceKind.RRP
        assert candidates[0].numeric_value == Decimal("2499.00")
        assert candidates[0].confidence == 0.8
        assert candidates[0].currency == "ZAR"

    def test_new_and_old_rrp_labels(self):
        """Test specific labels claim their amounts before generic ones"""
        candidates = find_price_candidates("New RRP: R8,990.00  Old RRP: R9,990.00")

        kinds = [candidate.price_kind for candidate in candidates]
        assert kinds == [PriceKind.NEW_RRP, PriceKind.OLD_RRP]
        assert candidates[0].numeric_value == Decimal("8990.00")
        assert candidates[1].numeric_value == Decimal("9990.00")

    def test_was_and_now(self):
        candidates = find_price_candidates("Was R1,299 Now R999")

        by_kind = {candidate.price_kind: candidate.numeric_value for candidate in candidates}
        assert by_kind == {PriceKind.OLD_RRP: Decimal("1299"), PriceKind.CURRENT_PRICE: Decimal("999")}

    def test_unlabelled_amounts_are_generic(self):
        candidates = find_price_candidates("AVR-X1700H    7.2 Channel Receiver    R9,990.00    R8,990.00")

        assert [candidate.price_kind for candidate in candidates] == [PriceKind.GENERIC_PRICE] * 2
        assert [candidate.numeric_value for candidate in candidates] == [Decimal("9990.00"), Decimal("8990.00")]
        assert candidates[0].confidence == 0.6

    def test_dollar_currency(self):
        candidates = find_price_candidates("Price: $49.99")

        assert candidates[0].price_kind == PriceKind.GENERIC_PRICE
        assert candidates[0].currency == "USD"
        assert candidates[0].numeric_value == Decimal("49.99")

    def test_position_offset(self):
        candidates = find_price_candidates("X R100", offset=10)

        assert candidates[0].position == 12

    def test_no_prices(self):
        assert find_price_candidates("Terms and conditions apply") == []


class TestTextHelpers:
    def test_specifications(self):
        specs = extract_specifications("100W 8 Ohms 45Hz-20kHz")

        assert specs == ["100W", "45Hz", "20kHz", "8 Ohms"]

    def test_product_start(self):
        assert looks_like_product_start("AVR-X1700H 7.2 Channel Receiver")
        assert looks_like_product_start("1. Bookshelf Speaker")
        assert not looks_like_product_start("Terms and conditions apply")

    def test_clean_product_name(self):
        assert clean_product_name("1. Bookshelf  Speaker - ") == "Bookshelf Speaker"

    @pytest.mark.parametrize("line", ["RRP R1,499.00", "PRICE: R999", "Our Price R8,999.00", "R2,499.00"])
    def test_price_lines_do_not_start_products(self, line):
        assert is_price_line(line)
        assert not looks_like_product_start(line)

    def test_named_line_with_price_is_not_a_price_line(self):
        assert not is_price_line("AVR-X1700H R9,990.00 R8,990.00")
        assert looks_like_product_start("AVR-X1700H R9,990.00 R8,990.00")

    def test_usable_name_length_is_inclusive(self):
        assert is_usable_name("Amp", 3)
        assert not is_usable_name("TV", 3)
        assert not is_usable_name(None, 3)
