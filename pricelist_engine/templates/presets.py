"""
Built-in per-supplier extraction defaults.

Presets seed the configuration of templates synthesized for a supplier the
store has never seen. Learned state always takes over from there.
"""
import re
from typing import Optional

from pydantic import BaseModel, Field

from pricelist_engine.models.domain import (
    PRICE_KIND_PRIORITY,
    DocumentKind,
    LayoutDescriptor,
    PriceKind,
    PricePolicy,
)

DEFAULT_SKIP_SECTIONS = ["Terms", "Conditions", "Contact"]
DEFAULT_SKIP_SHEETS = ["Summary", "Index", "Contents", "Cover"]


def complete_priorities(preferred: list[PriceKind]) -> list[PriceKind]:
    """Preferred kinds first, then every other kind in global priority order."""
    ordered = list(dict.fromkeys(preferred))
    ordered.extend(kind for kind in PRICE_KIND_PRIORITY if kind not in ordered)
    return ordered


class SupplierPreset(BaseModel):
    """Extraction defaults for one known supplier"""

    supplier_key: str
    document_kind: DocumentKind = DocumentKind.PDF
    column_priorities: list[PriceKind] = Field(default_factory=list)
    skip_sections: list[str] = Field(default_factory=list)
    skip_sheets: list[str] = Field(default_factory=list)
    price_policy: PricePolicy = PricePolicy.PRIORITY_TABLE


SUPPLIER_PRESETS: dict[str, SupplierPreset] = {
    preset.supplier_key: preset
    for preset in [
        SupplierPreset(
            supplier_key="denon",
            column_priorities=[PriceKind.NEW_RRP, PriceKind.CURRENT_PRICE, PriceKind.RRP, PriceKind.GENERIC_PRICE],
            skip_sections=["Terms", "Conditions", "Contact"],
            price_policy=PricePolicy.TWO_PRICE,
        ),
        SupplierPreset(
            supplier_key="marantz",
            column_priorities=[PriceKind.NEW_RRP, PriceKind.CURRENT_PRICE, PriceKind.GENERIC_PRICE],
            price_policy=PricePolicy.TWO_PRICE,
        ),
        SupplierPreset(
            supplier_key="mission",
            column_priorities=[PriceKind.GENERIC_PRICE, PriceKind.RRP, PriceKind.COST_PRICE],
            skip_sections=["Header", "Footer"],
        ),
        SupplierPreset(
            supplier_key="nology",
            document_kind=DocumentKind.SPREADSHEET,
            column_priorities=[PriceKind.NEW_RRP, PriceKind.RRP, PriceKind.GENERIC_PRICE],
            skip_sheets=["Summary", "Index", "Contents"],
        ),
        SupplierPreset(
            supplier_key="proaudio",
            column_priorities=[PriceKind.NEW_RRP, PriceKind.CURRENT_PRICE, PriceKind.RRP],
        ),
        SupplierPreset(
            supplier_key="polk",
            column_priorities=[PriceKind.GENERIC_PRICE, PriceKind.RRP],
        ),
    ]
}


def normalize_supplier_key(supplier_key: str) -> str:
    return "-".join(supplier_key.strip().lower().split())


def preset_for(supplier_key: str) -> Optional[SupplierPreset]:
    """Preset whose key matches the supplier key or one of its words"""
    key = normalize_supplier_key(supplier_key)
    if key in SUPPLIER_PRESETS:
        return SUPPLIER_PRESETS[key]
    tokens = re.split(r"[^a-z0-9]+", key)
    for preset_key, preset in SUPPLIER_PRESETS.items():
        if preset_key in tokens:
            return preset
    return None


def default_preset(supplier_key: str, descriptor: LayoutDescriptor) -> SupplierPreset:
    """Defaults for an unknown supplier, shaped by the document structure."""
    sheet_count = descriptor.column_structure.sheet_count if descriptor.column_structure else 0
    return SupplierPreset(
        supplier_key=normalize_supplier_key(supplier_key),
        document_kind=descriptor.document_kind,
        column_priorities=[PriceKind.NEW_RRP, PriceKind.RRP, PriceKind.GENERIC_PRICE, PriceKind.COST_PRICE],
        skip_sections=list(DEFAULT_SKIP_SECTIONS),
        skip_sheets=list(DEFAULT_SKIP_SHEETS) if sheet_count > 1 else [],
    )


def resolve_preset(supplier_key: str, descriptor: LayoutDescriptor) -> SupplierPreset:
    return preset_for(supplier_key) or default_preset(supplier_key, descriptor)
