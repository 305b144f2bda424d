"""
Unit tests for SqlTemplateStore against a file-backed SQLite database.
"""
from unittest.mock import AsyncMock, patch

import pytest

from pricelist_engine.config.settings import DatabaseSettings
from pricelist_engine.core.exceptions import TemplateConflictError
from pricelist_engine.models.domain import (
    DocumentKind,
    LayoutType,
    LearningEntry,
    PriceKind,
    PricePolicy,
    ProcessingHistory,
    SupplierProfile,
    Template,
    TemplateConfig,
)
from pricelist_engine.repositories.profile_repository import SupplierProfileRepository
from pricelist_engine.repositories.store import SqlTemplateStore
from pricelist_engine.repositories.template_repository import TemplateRepository


@pytest.fixture
async def sql_store(tmp_path):
    settings = DatabaseSettings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'templates.db'}")
    store = SqlTemplateStore.from_settings(settings)
    await store.initialize()
    yield store
    await store.close()


def make_template(template_id="denon-table", supplier_key="denon", layout_type=LayoutType.TABLE):
    return Template(
        id=template_id,
        name=template_id,
        supplier_key=supplier_key,
        document_kind=DocumentKind.PDF,
        layout_type=layout_type,
        config=TemplateConfig(
            price_policy=PricePolicy.TWO_PRICE,
            column_priorities=[PriceKind.NEW_RRP, PriceKind.RRP],
            skip_sections=["Terms"],
        ),
    )


class TestSqlTemplates:
    """Test template persistence"""

    async def test_create_and_read_back(self, sql_store):
        await sql_store.create_template(make_template())

        stored = await sql_store.get_template("denon-table")

        assert stored.revision == 1
        assert stored.supplier_key == "denon"
        assert stored.layout_type == LayoutType.TABLE
        assert stored.config.price_policy == PricePolicy.TWO_PRICE
        assert stored.config.column_priorities == [PriceKind.NEW_RRP, PriceKind.RRP]
        assert stored.config.skip_sections == ["Terms"]
        assert stored.created_at.tzinfo is not None

    async def test_duplicate_create_conflicts(self, sql_store):
        await sql_store.create_template(make_template())

        with pytest.raises(TemplateConflictError):
            await sql_store.create_template(make_template())

    async def test_lost_create_race_conflicts(self, sql_store):
        await sql_store.create_template(make_template())

        with patch.object(TemplateRepository, "current_revision", AsyncMock(return_value=None)):
            with pytest.raises(TemplateConflictError):
                await sql_store.create_template(make_template())

    async def test_compare_and_swap(self, sql_store):
        created = await sql_store.create_template(make_template())
        entry = LearningEntry(version="1.0.1", overall_score=0.4, issues=["low_confidence"])

        updated = await sql_store.compare_and_swap_template(
            created.model_copy(update={"version": "1.0.1", "learning_history": [entry]}),
            expected_revision=1,
        )

        assert updated.revision == 2
        stored = await sql_store.get_template("denon-table")
        assert stored.revision == 2
        assert stored.version == "1.0.1"
        assert stored.learning_history[0].issues == ["low_confidence"]

    async def test_stale_revision_conflicts(self, sql_store):
        created = await sql_store.create_template(make_template())
        await sql_store.compare_and_swap_template(created, expected_revision=1)

        with pytest.raises(TemplateConflictError) as exc_info:
            await sql_store.compare_and_swap_template(created, expected_revision=1)

        assert exc_info.value.details["actual_revision"] == 2

    async def test_candidates(self, sql_store):
        await sql_store.create_template(make_template("denon-table"))
        await sql_store.create_template(make_template("mission-table", supplier_key="mission"))
        await sql_store.create_template(
            make_template("generic-pdf", supplier_key="generic", layout_type=LayoutType.GENERIC)
        )

        candidates = await sql_store.list_candidate_templates("denon", LayoutType.TABLE)

        assert [template.id for template in candidates] == ["denon-table", "generic-pdf"]
        assert [t.id for t in await sql_store.list_templates("mission")] == ["mission-table"]
        assert len(await sql_store.list_templates()) == 3


class TestSqlProfiles:
    async def test_insert_and_swap(self, sql_store):
        inserted = await sql_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=None)
        changed = inserted.model_copy(update={"processing_history": ProcessingHistory(total_files=3)})

        swapped = await sql_store.save_profile(changed, expected_revision=1)

        assert swapped.revision == 2
        stored = await sql_store.get_profile("denon")
        assert stored.revision == 2
        assert stored.processing_history.total_files == 3

    async def test_conflicts(self, sql_store):
        await sql_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=None)

        with pytest.raises(TemplateConflictError):
            await sql_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=None)
        with pytest.raises(TemplateConflictError):
            await sql_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=5)

    async def test_lost_insert_race_conflicts(self, sql_store):
        await sql_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=None)

        # the other writer inserted after our existence check
        with patch.object(SupplierProfileRepository, "current_revision", AsyncMock(return_value=None)):
            with pytest.raises(TemplateConflictError):
                await sql_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=None)

        assert (await sql_store.get_profile("denon")).revision == 1

    async def test_unknown_records(self, sql_store):
        assert await sql_store.get_template("missing") is None
        assert await sql_store.get_profile("nobody") is None
