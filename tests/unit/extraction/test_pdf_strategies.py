"""
Unit tests for per-layout PDF extraction strategies.
"""
from decimal import Decimal
from unittest.mock import patch

import pytest

from pricelist_engine.extraction.pdf_strategies import (
    CatalogStrategy,
    GenericStrategy,
    MultiColumnStrategy,
    TableStrategy,
    strategy_for,
)
from pricelist_engine.models.domain import ExtractionStrategy, LayoutType, PriceKind, TemplateConfig


def indexed(lines):
    return list(enumerate(lines))


@pytest.fixture
def config():
    return TemplateConfig()


class TestStrategySelection:
    @pytest.mark.parametrize(
        "layout_type,expected",
        [
            (LayoutType.TABLE, TableStrategy),
            (LayoutType.MULTI_COLUMN, MultiColumnStrategy),
            (LayoutType.CATALOG, CatalogStrategy),
            (LayoutType.LIST, GenericStrategy),
            (LayoutType.DOCUMENT, GenericStrategy),
            (LayoutType.UNKNOWN, GenericStrategy),
        ],
    )
    def test_strategy_for_layout(self, layout_type, expected):
        assert isinstance(strategy_for(layout_type), expected)

    def test_aggressive_relaxes_threshold(self):
        strategy = TableStrategy()

        assert strategy.threshold(TemplateConfig()) == 0.5
        assert strategy.threshold(TemplateConfig(strategy=ExtractionStrategy.AGGRESSIVE)) == 0.4


class TestTableStrategy:
    """Test single-line table extraction"""

    def test_table_rows(self, table_pdf_content, config):
        outcome = TableStrategy().extract(indexed(table_pdf_content.lines), config)

        assert len(outcome.products) == 6
        first = outcome.products[0]
        assert first.name == "AVR-X1700H 7.2 Channel Receiver"
        assert first.price == Decimal("9990.00")
        assert first.price_kind == PriceKind.GENERIC_PRICE
        assert first.extraction_method == "table_pdf"
        assert first.source_location.line == 0
        assert first.needs_review is True

    def test_short_lines_only_read_when_aggressive(self):
        lines = indexed(["Amps R100"])

        balanced = TableStrategy().extract(lines, TemplateConfig())
        aggressive = TableStrategy().extract(lines, TemplateConfig(strategy=ExtractionStrategy.AGGRESSIVE))

        assert balanced.loci_scanned == 0
        assert [product.name for product in aggressive.products] == ["Amps"]

    def test_price_above_maximum_skipped(self, config):
        outcome = TableStrategy().extract(indexed(["Yacht Deluxe Edition R2,000,000.00"]), config)

        assert outcome.products == []
        assert outcome.loci_skipped == 1

    def test_locus_errors_are_counted_and_skipped(self, config):
        strategy = TableStrategy()
        lines = indexed(["Bookshelf Speaker R2,499.00", "Floorstanding Speaker R8,999.00"])

        with patch.object(strategy, "extract_locus", side_effect=[ValueError("bad locus"), None]):
            outcome = strategy.extract(lines, config)

        assert outcome.errors == 1
        assert outcome.loci_skipped == 1
        assert outcome.loci_scanned == 2


class TestMultiColumnStrategy:
    """Test reconstruction of fragmented products"""

    def test_groups_lines_by_product_start(self, config):
        lines = indexed(
            [
                "BS-100 Bookshelf Speaker",
                "Gloss black finish",
                "Retail R2,499.00",
                "FS-300 Floorstanding Speaker",
                "Retail R8,999.00",
            ]
        )

        outcome = MultiColumnStrategy().extract(lines, config)

        assert [product.name for product in outcome.products] == [
            "BS-100 Bookshelf Speaker",
            "FS-300 Floorstanding Speaker",
        ]
        first = outcome.products[0]
        assert first.price_kind == PriceKind.RETAIL_PRICE
        assert first.source_location.line == 0
        assert first.source_location.end_line == 2
        assert first.extraction_method == "multi_column_pdf"

    def test_label_first_price_lines_close_groups(self, catalog_pdf_content, config):
        outcome = MultiColumnStrategy().extract(indexed(catalog_pdf_content.lines), config)

        assert [product.name for product in outcome.products] == [
            "Denon Bookshelf Speaker BS100",
            "Denon Centre Speaker CS200",
            "Denon Floorstanding Speaker FS300",
        ]
        assert [product.price for product in outcome.products] == [
            Decimal("1499.00"),
            Decimal("3299.00"),
            Decimal("8999.00"),
        ]
        assert outcome.products[0].price_kind == PriceKind.RRP
        assert outcome.products[1].source_location.line == 4
        assert outcome.products[1].source_location.end_line == 6
        assert outcome.loci_skipped == 0

    def test_price_line_without_product_is_dropped(self, config):
        lines = indexed(["RRP R1,499.00", "BS-100 Bookshelf Speaker", "RRP R2,499.00"])

        outcome = MultiColumnStrategy().extract(lines, config)

        assert outcome.loci_scanned == 1
        assert outcome.products[0].price == Decimal("2499.00")


class TestCatalogStrategy:
    """Test block-based catalog extraction"""

    def test_separator_blocks(self, config):
        lines = indexed(
            [
                "---PRODUCT-SEPARATOR---",
                "SUB-12 Powered Subwoofer",
                "Deep bass extension with a twelve inch driver and 300W amplifier",
                "Special R5,999.00",
                "---PRODUCT-SEPARATOR---",
                "SUB-8 Compact Subwoofer",
                "Small footprint subwoofer for apartments and desks",
                "Special R3,499.00",
            ]
        )

        outcome = CatalogStrategy().extract(lines, config)

        assert len(outcome.products) == 2
        first, second = outcome.products
        assert first.name == "SUB-12 Powered Subwoofer"
        assert first.price == Decimal("5999.00")
        assert first.description == "Deep bass extension with a twelve inch driver and 300W amplifier"
        assert first.specs == ["300W"]
        assert first.source_location.block == 0
        assert second.source_location.block == 1
        assert second.extraction_method == "catalog_pdf"

    def test_template_separator_overrides_default(self):
        config = TemplateConfig(block_separator="====")
        lines = indexed(["====", "SUB-12 Powered Subwoofer R5,999.00", "====", "SUB-8 Compact Subwoofer R3,499.00"])

        outcome = CatalogStrategy().extract(lines, config)

        assert [product.source_location.block for product in outcome.products] == [0, 1]

    def test_blocks_with_label_first_price_lines(self, catalog_pdf_content, config):
        outcome = CatalogStrategy().extract(indexed(catalog_pdf_content.lines), config)

        assert [product.name for product in outcome.products] == [
            "Denon Bookshelf Speaker BS100",
            "Denon Centre Speaker CS200",
            "Denon Floorstanding Speaker FS300",
        ]
        first = outcome.products[0]
        assert first.price == Decimal("1499.00")
        assert first.description == "Compact two way speaker with silk dome tweeter"
        assert [product.source_location.block for product in outcome.products] == [0, 1, 2]


class TestGenericStrategy:
    def test_labelled_lines(self, labelled_pdf_content, config):
        outcome = GenericStrategy().extract(indexed(labelled_pdf_content.lines), config)

        assert [product.name for product in outcome.products] == [
            "Bookshelf Speaker BS100",
            "Floorstanding Speaker FS300",
        ]
        first = outcome.products[0]
        assert first.price_kind == PriceKind.RRP
        assert first.confidence == 0.8
        assert first.needs_review is False
        assert outcome.loci_skipped == 1
