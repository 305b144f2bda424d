"""
Unit tests for InMemoryTemplateStore.

Covers revision-checked writes, candidate filtering and copy isolation.
"""
import pytest

from pricelist_engine.core.exceptions import TemplateConflictError
from pricelist_engine.models.domain import (
    DocumentKind,
    LayoutType,
    ProcessingHistory,
    SupplierProfile,
    Template,
)


def make_template(template_id="denon-table", supplier_key="denon", layout_type=LayoutType.TABLE):
    return Template(
        id=template_id,
        name=template_id,
        supplier_key=supplier_key,
        document_kind=DocumentKind.PDF,
        layout_type=layout_type,
    )


class TestTemplateWrites:
    """Test create and compare-and-swap"""

    async def test_create_sets_first_revision(self, memory_store):
        created = await memory_store.create_template(make_template())

        assert created.revision == 1
        assert (await memory_store.get_template("denon-table")).revision == 1

    async def test_duplicate_create_conflicts(self, memory_store):
        await memory_store.create_template(make_template())

        with pytest.raises(TemplateConflictError) as exc_info:
            await memory_store.create_template(make_template())

        assert exc_info.value.details["actual_revision"] == 1

    async def test_compare_and_swap(self, memory_store):
        created = await memory_store.create_template(make_template())

        updated = await memory_store.compare_and_swap_template(
            created.model_copy(update={"name": "renamed"}), expected_revision=1
        )

        assert updated.revision == 2
        assert (await memory_store.get_template("denon-table")).name == "renamed"

    async def test_stale_revision_conflicts(self, memory_store):
        created = await memory_store.create_template(make_template())
        await memory_store.compare_and_swap_template(created, expected_revision=1)

        with pytest.raises(TemplateConflictError) as exc_info:
            await memory_store.compare_and_swap_template(created, expected_revision=1)

        assert exc_info.value.details == {
            "record_id": "denon-table",
            "expected_revision": 1,
            "actual_revision": 2,
        }

    async def test_swap_of_missing_template_conflicts(self, memory_store):
        with pytest.raises(TemplateConflictError):
            await memory_store.compare_and_swap_template(make_template(), expected_revision=1)

    async def test_returned_values_are_copies(self, memory_store):
        await memory_store.create_template(make_template())

        first = await memory_store.get_template("denon-table")
        first.config.processing_hints["mutated"] = True

        second = await memory_store.get_template("denon-table")
        assert "mutated" not in second.config.processing_hints


class TestTemplateQueries:
    async def test_candidate_filtering(self, memory_store):
        await memory_store.create_template(make_template("denon-table"))
        await memory_store.create_template(make_template("denon-catalog", layout_type=LayoutType.CATALOG))
        await memory_store.create_template(make_template("mission-table", supplier_key="mission"))
        await memory_store.create_template(
            make_template("generic-pdf", supplier_key="generic", layout_type=LayoutType.GENERIC)
        )

        candidates = await memory_store.list_candidate_templates("denon", LayoutType.TABLE)

        assert [template.id for template in candidates] == ["denon-table", "generic-pdf"]

    async def test_list_templates_by_supplier(self, memory_store):
        await memory_store.create_template(make_template("denon-table"))
        await memory_store.create_template(make_template("mission-table", supplier_key="mission"))

        assert len(await memory_store.list_templates()) == 2
        assert [t.id for t in await memory_store.list_templates("mission")] == ["mission-table"]

    async def test_unknown_template(self, memory_store):
        assert await memory_store.get_template("missing") is None


class TestProfiles:
    """Test supplier profile insert and compare-and-swap"""

    async def test_insert_then_swap(self, memory_store):
        inserted = await memory_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=None)
        assert inserted.revision == 1

        changed = inserted.model_copy(update={"processing_history": ProcessingHistory(total_files=1)})
        swapped = await memory_store.save_profile(changed, expected_revision=1)

        assert swapped.revision == 2
        assert (await memory_store.get_profile("denon")).processing_history.total_files == 1

    async def test_second_insert_conflicts(self, memory_store):
        await memory_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=None)

        with pytest.raises(TemplateConflictError):
            await memory_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=None)

    async def test_stale_profile_conflicts(self, memory_store):
        inserted = await memory_store.save_profile(SupplierProfile(supplier_key="denon"), expected_revision=None)
        await memory_store.save_profile(inserted, expected_revision=1)

        with pytest.raises(TemplateConflictError):
            await memory_store.save_profile(inserted, expected_revision=1)

    async def test_unknown_profile(self, memory_store):
        assert await memory_store.get_profile("nobody") is None
