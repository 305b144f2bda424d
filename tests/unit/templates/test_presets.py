"""
Unit tests for built-in supplier presets.
"""
import pytest

from pricelist_engine.models.domain import (
    PRICE_KIND_PRIORITY,
    DocumentKind,
    PriceKind,
    PricePolicy,
)
from pricelist_engine.templates.presets import (
    DEFAULT_SKIP_SHEETS,
    complete_priorities,
    normalize_supplier_key,
    preset_for,
    resolve_preset,
)


class TestSupplierKeys:
    @pytest.mark.parametrize(
        "raw,expected",
        [("Denon", "denon"), ("  Pro   Audio ", "pro-audio"), ("mission", "mission")],
    )
    def test_normalize(self, raw, expected):
        assert normalize_supplier_key(raw) == expected


class TestPresetLookup:
    """Test exact and containment matching"""

    def test_exact_match(self):
        preset = preset_for("Denon")

        assert preset.supplier_key == "denon"
        assert preset.price_policy == PricePolicy.TWO_PRICE

    def test_contained_key(self):
        assert preset_for("Nology Distribution").supplier_key == "nology"

    def test_unknown_supplier(self):
        assert preset_for("acme") is None

    @pytest.mark.parametrize("supplier", ["commission-audio", "Polkadot Imports", "denonville"])
    def test_key_inside_another_word_does_not_match(self, supplier):
        assert preset_for(supplier) is None

    def test_key_as_separate_word(self):
        assert preset_for("Mission_Audio.za").supplier_key == "mission"

    def test_spreadsheet_preset(self):
        preset = preset_for("nology")

        assert preset.document_kind == DocumentKind.SPREADSHEET
        assert "Summary" in preset.skip_sheets


class TestDefaultPreset:
    def test_pdf_defaults(self, pdf_descriptor):
        preset = resolve_preset("Acme Audio", pdf_descriptor)

        assert preset.supplier_key == "acme-audio"
        assert preset.document_kind == DocumentKind.PDF
        assert preset.column_priorities[0] == PriceKind.NEW_RRP
        assert preset.skip_sheets == []
        assert preset.price_policy == PricePolicy.PRIORITY_TABLE

    def test_multi_sheet_workbook_skips_summary_sheets(self, spreadsheet_descriptor):
        column_structure = spreadsheet_descriptor.column_structure.model_copy(update={"sheet_count": 3})
        descriptor = spreadsheet_descriptor.model_copy(update={"column_structure": column_structure})

        preset = resolve_preset("acme", descriptor)

        assert preset.skip_sheets == DEFAULT_SKIP_SHEETS

    def test_known_supplier_wins(self, pdf_descriptor):
        assert resolve_preset("marantz", pdf_descriptor).supplier_key == "marantz"


class TestCompletePriorities:
    def test_preferred_first_then_global_order(self):
        ordered = complete_priorities([PriceKind.GENERIC_PRICE, PriceKind.RRP, PriceKind.GENERIC_PRICE])

        assert ordered[:2] == [PriceKind.GENERIC_PRICE, PriceKind.RRP]
        assert ordered[2:] == [PriceKind.NEW_RRP, PriceKind.CURRENT_PRICE, PriceKind.RETAIL_PRICE,
                               PriceKind.OLD_RRP, PriceKind.COST_PRICE]
        assert sorted(ordered) == sorted(PRICE_KIND_PRIORITY)
