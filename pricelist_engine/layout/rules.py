"""
Priority-ordered layout decision rules.

A rule pairs a predicate over the computed signals with a handler producing
the layout decision. Rules are evaluated in order and the first applicable
rule wins; every rule table ends with a catch-all.
"""
from typing import Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from pricelist_engine.layout.pdf_analysis import PdfSignals
from pricelist_engine.layout.spreadsheet_analysis import SheetAnalysis
from pricelist_engine.models.domain import LayoutType

SignalsType = TypeVar("SignalsType")


class LayoutDecision(BaseModel):
    layout_type: LayoutType
    subtype: str
    strength: float = Field(default=0.0, ge=0.0, le=1.0, description="Winning signal strength")
    rule: str


class SpreadsheetSignals(BaseModel):
    sheets: list[SheetAnalysis] = Field(default_factory=list)
    primary: Optional[SheetAnalysis] = None


class ClassificationRule(Generic[SignalsType]):
    """A named (predicate, handler) pair"""

    def __init__(
        self,
        name: str,
        predicate: Callable[[SignalsType], bool],
        handler: Callable[[SignalsType], tuple[LayoutType, str, float]],
    ) -> None:
        self.name = name
        self.predicate = predicate
        self.handler = handler

    def applies(self, signals: SignalsType) -> bool:
        return self.predicate(signals)

    def decide(self, signals: SignalsType) -> LayoutDecision:
        layout_type, subtype, strength = self.handler(signals)
        return LayoutDecision(
            layout_type=layout_type, subtype=subtype, strength=strength, rule=self.name
        )


def first_match(rules: list[ClassificationRule], signals) -> LayoutDecision:
    for rule in rules:
        if rule.applies(signals):
            return rule.decide(signals)
    raise ValueError("Rule table has no catch-all rule")


# ============================================================================
# PDF rules
# ============================================================================


def _table(signals: PdfSignals) -> tuple[LayoutType, str, float]:
    patterns = signals.price_patterns
    if patterns.has_new_rrp and patterns.has_old_rrp:
        subtype = "price_comparison_table"
    elif signals.consistency > 0.8:
        subtype = "structured_table"
    else:
        subtype = "loose_table"
    return LayoutType.TABLE, subtype, signals.tabular.strength


def _multi_column(signals: PdfSignals) -> tuple[LayoutType, str, float]:
    subtype = "catalog_columns" if signals.catalog.detected else "text_columns"
    return LayoutType.MULTI_COLUMN, subtype, signals.multi_column.strength


def _catalog(signals: PdfSignals) -> tuple[LayoutType, str, float]:
    subtype = (
        "detailed_catalog"
        if signals.price_patterns.total_price_references > 20
        else "simple_catalog"
    )
    return LayoutType.CATALOG, subtype, signals.catalog.strength


def _price_list(signals: PdfSignals) -> tuple[LayoutType, str, float]:
    return LayoutType.LIST, "price_list", min(1.0, signals.price_patterns.price_density)


PDF_RULES: list[ClassificationRule[PdfSignals]] = [
    ClassificationRule(
        "tabular",
        lambda s: s.tabular.detected and s.tabular.strength > 0.7,
        _table,
    ),
    ClassificationRule("multi_column", lambda s: s.multi_column.detected, _multi_column),
    ClassificationRule("catalog", lambda s: s.catalog.detected, _catalog),
    ClassificationRule(
        "price_density",
        lambda s: s.price_patterns.total_price_references > 10,
        _price_list,
    ),
    ClassificationRule(
        "empty",
        lambda s: s.line_count == 0,
        lambda s: (LayoutType.UNKNOWN, "empty", 0.0),
    ),
    ClassificationRule(
        "unstructured",
        lambda s: True,
        lambda s: (LayoutType.DOCUMENT, "unstructured", 0.0),
    ),
]


# ============================================================================
# Spreadsheet rules
# ============================================================================


def _single_sheet(signals: SpreadsheetSignals) -> tuple[LayoutType, str, float]:
    primary = signals.primary
    if len(primary.price_columns) >= 2:
        subtype = "multi_price_columns"
    elif primary.headers.detected:
        subtype = "structured_single"
    else:
        subtype = "unstructured_single"
    return LayoutType.SINGLE_SHEET, subtype, primary.headers.confidence


def _multi_sheet(signals: SpreadsheetSignals) -> tuple[LayoutType, str, float]:
    data_sheets = sum(1 for sheet in signals.sheets if sheet.data_structure.has_product_data)
    subtype = "multi_data_sheets" if data_sheets > 1 else "single_data_multi_info"
    return LayoutType.MULTI_SHEET, subtype, signals.primary.headers.confidence


SPREADSHEET_RULES: list[ClassificationRule[SpreadsheetSignals]] = [
    ClassificationRule(
        "no_sheets",
        lambda s: s.primary is None,
        lambda s: (LayoutType.UNKNOWN, "no_data", 0.0),
    ),
    ClassificationRule("single_sheet", lambda s: len(s.sheets) == 1, _single_sheet),
    ClassificationRule("multi_sheet", lambda s: True, _multi_sheet),
]
