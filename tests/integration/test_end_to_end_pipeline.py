"""
Integration tests for the full pipeline on the SQL template store.

Covers template reuse across runs, learning persistence and the
spreadsheet flow against a file-backed SQLite database.
"""
import pytest

from pricelist_engine.config.settings import DatabaseSettings
from pricelist_engine.extraction.extractor import PriceExtractor
from pricelist_engine.layout.classifier import LayoutClassifier
from pricelist_engine.models.domain import LayoutType, PriceKind, PricePolicy
from pricelist_engine.pipeline.document_pipeline import CollectingResultSink, DocumentPipeline
from pricelist_engine.repositories.layout_patterns import LayoutPatternRepository
from pricelist_engine.repositories.store import SqlTemplateStore
from pricelist_engine.templates.matcher import GENERIC_PDF_TEMPLATE_ID, TemplateMatcher


@pytest.fixture
async def sql_store(tmp_path):
    store = SqlTemplateStore.from_settings(
        DatabaseSettings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")
    )
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def seeded_matcher(sql_store, template_settings, fixed_clock):
    matcher = TemplateMatcher(sql_store, template_settings, clock=fixed_clock)
    await matcher.ensure_default_templates()
    return matcher


@pytest.fixture
def patterns():
    return LayoutPatternRepository()


@pytest.fixture
def pipeline(classifier_settings, extraction_settings, seeded_matcher, patterns):
    return DocumentPipeline(
        LayoutClassifier(settings=classifier_settings, pattern_repository=patterns),
        PriceExtractor(extraction_settings),
        seeded_matcher,
        sink=CollectingResultSink(),
    )


class TestEndToEndPipeline:
    """Test repeated runs against a persistent store"""

    async def test_first_run_clones_generic_template(self, pipeline, sql_store, table_pdf_content):
        result = await pipeline.process("denon", table_pdf_content)

        template = await sql_store.get_template(result.template_id)
        assert template.is_adaptive is True
        assert template.base_template_id == GENERIC_PDF_TEMPLATE_ID
        assert template.layout_type == LayoutType.TABLE
        assert template.config.price_policy == PricePolicy.TWO_PRICE
        assert template.performance.usage_count == 1
        assert result.products[0].price_kind == PriceKind.NEW_RRP

    async def test_second_run_reuses_learned_template(
        self, pipeline, sql_store, seeded_matcher, table_pdf_content
    ):
        first = await pipeline.process("denon", table_pdf_content)
        second = await pipeline.process("denon", table_pdf_content)

        assert second.template_id == first.template_id
        assert len(second.products) == 6
        assert seeded_matcher.get_metrics()["templates_reused"] == 1

        template = await sql_store.get_template(first.template_id)
        assert template.performance.usage_count == 2
        profile = await sql_store.get_profile("denon")
        assert profile.processing_history.total_files == 2
        assert profile.template_success_rates[first.template_id] > 0

    async def test_generic_templates_are_not_modified(self, pipeline, sql_store, table_pdf_content):
        await pipeline.process("denon", table_pdf_content)

        generic = await sql_store.get_template(GENERIC_PDF_TEMPLATE_ID)
        assert generic.revision == 1
        assert generic.performance.usage_count == 0

    async def test_layout_pattern_recorded(self, pipeline, patterns, table_pdf_content):
        await pipeline.process("denon", table_pdf_content)
        await pipeline.process("denon", table_pdf_content)

        assert patterns.get_statistics()["total_hits"] == 2

    async def test_spreadsheet_flow(self, pipeline, sql_store, spreadsheet_content):
        result = await pipeline.process("nology", spreadsheet_content)

        assert result.descriptor.layout_type == LayoutType.SINGLE_SHEET
        assert len(result.products) == 2
        assert all(product.price_kind == PriceKind.NEW_RRP for product in result.products)
        templates = await sql_store.list_templates("nology")
        assert len(templates) == 1
        assert templates[0].base_template_id == "generic-spreadsheet"
