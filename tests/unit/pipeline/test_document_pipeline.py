"""
Unit tests for DocumentPipeline.

Runs real classification, matching and extraction against the in-memory
store; only the learning step is mocked where failures are simulated.
"""
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from pricelist_engine.core.exceptions import UnsupportedFormatError
from pricelist_engine.extraction.extractor import PriceExtractor
from pricelist_engine.layout.classifier import LayoutClassifier
from pricelist_engine.models.domain import LayoutType, PriceKind
from pricelist_engine.pipeline.document_pipeline import CollectingResultSink, DocumentPipeline
from pricelist_engine.templates.matcher import TemplateMatcher


@pytest.fixture
def sink():
    return CollectingResultSink()


@pytest.fixture
def matcher(memory_store, template_settings, fixed_clock):
    return TemplateMatcher(memory_store, template_settings, clock=fixed_clock)


@pytest.fixture
def pipeline(classifier_settings, extraction_settings, matcher, sink):
    return DocumentPipeline(
        LayoutClassifier(settings=classifier_settings),
        PriceExtractor(extraction_settings),
        matcher,
        sink=sink,
    )


class TestDocumentPipeline:
    """Test the classify, match, extract, deliver, learn sequence"""

    async def test_two_price_table(self, pipeline, table_pdf_content):
        result = await pipeline.process("Denon", table_pdf_content)

        assert result.descriptor.layout_type == LayoutType.TABLE
        assert result.extraction.extraction_method == "two_price_pdf"
        assert len(result.products) == 6
        assert result.products[0].price == Decimal("8990.00")
        assert result.products[0].price_kind == PriceKind.NEW_RRP
        assert result.template_version == "1.0.0"
        assert result.learning_error is None
        assert result.processing_time_ms >= 0

    async def test_delivery_metadata(self, pipeline, sink, table_pdf_content):
        await pipeline.process("denon", table_pdf_content)

        assert len(sink.deliveries) == 1
        supplier_key, products, metadata = sink.deliveries[0]
        assert supplier_key == "denon"
        assert len(products) == 6
        assert metadata["confidence"] == 90.0
        assert metadata["extraction_method"] == "two_price_pdf"
        assert metadata["price_columns_found"][0]["price_kind"] == "New RRP"

    async def test_outcome_is_learned(self, pipeline, memory_store, table_pdf_content):
        result = await pipeline.process("denon", table_pdf_content)

        template = await memory_store.get_template(result.template_id)
        assert template.performance.usage_count == 1
        profile = await memory_store.get_profile("denon")
        assert profile.processing_history.total_files == 1
        assert profile.processing_history.total_products == 6
        assert profile.common_patterns.price_formats == {"r_format": 1}

    async def test_spreadsheet(self, pipeline, spreadsheet_content):
        result = await pipeline.process("nology", spreadsheet_content)

        assert result.extraction.extraction_method == "spreadsheet"
        assert [product.price for product in result.products] == [Decimal("1250"), Decimal("2350")]

    async def test_learning_failure_is_captured(self, pipeline, matcher, table_pdf_content):
        matcher.update_template = AsyncMock(side_effect=RuntimeError("store unavailable"))

        result = await pipeline.process("denon", table_pdf_content)

        assert result.learning_error == "store unavailable"
        assert len(result.products) == 6

    async def test_unsupported_content_raises(self, pipeline, sink):
        with pytest.raises(UnsupportedFormatError):
            await pipeline.process("acme", {"kind": "fax"})

        assert sink.deliveries == []

    async def test_without_sink(self, classifier_settings, extraction_settings, matcher, labelled_pdf_content):
        pipeline = DocumentPipeline(
            LayoutClassifier(settings=classifier_settings), PriceExtractor(extraction_settings), matcher
        )

        result = await pipeline.process("acme", labelled_pdf_content)

        assert len(result.products) == 2
