"""
Layout classification for decoded pricelists.

``classify`` is a pure, deterministic function of the content: the same lines
or sheet grids always produce the same descriptor, and no failure escapes it.
Content that cannot be interpreted yields an ``unknown`` descriptor with a
confidence of 0.1 and the error message attached.

``analyze`` wraps ``classify`` with the optional AI enhancement step and
records confident layouts in the injected pattern repository.
"""
from typing import Any, Optional, Union

import structlog
from pydantic import TypeAdapter, ValidationError

from pricelist_engine.config.settings import ClassifierSettings
from pricelist_engine.layout.enhancement import LayoutEnhancer
from pricelist_engine.layout.pdf_analysis import PdfSignals, analyze_pdf_lines
from pricelist_engine.layout.rules import (
    PDF_RULES,
    SPREADSHEET_RULES,
    LayoutDecision,
    SpreadsheetSignals,
    first_match,
)
from pricelist_engine.layout.spreadsheet_analysis import analyze_sheet, identify_primary_sheet
from pricelist_engine.models.domain import (
    ColumnStructure,
    DocumentContent,
    DocumentKind,
    LayoutDescriptor,
    LayoutType,
    PdfContent,
    SpreadsheetContent,
)
from pricelist_engine.repositories.layout_patterns import LayoutPatternRepository

logger = structlog.get_logger(__name__)

FAILURE_CONFIDENCE = 0.1

_content_adapter = TypeAdapter(DocumentContent)

PROCESSING_STRATEGIES = {
    LayoutType.TABLE: "tabular",
    LayoutType.MULTI_COLUMN: "column_reconstruction",
    LayoutType.CATALOG: "block_processing",
}


def processing_strategy_for(layout_type: LayoutType) -> str:
    return PROCESSING_STRATEGIES.get(layout_type, "generic")


class LayoutClassifier:
    """
    Classifies PDF text and spreadsheet grids into layout descriptors.

    Collaborators are injected:
    - ``pattern_repository`` receives confident classifications
    - ``enhancer`` is consulted for low-confidence results when enabled
    """

    def __init__(
        self,
        settings: Optional[ClassifierSettings] = None,
        pattern_repository: Optional[LayoutPatternRepository] = None,
        enhancer: Optional[LayoutEnhancer] = None,
    ) -> None:
        self.settings = settings or ClassifierSettings()
        self.pattern_repository = pattern_repository
        self.enhancer = enhancer
        self.logger = logger.bind(component="layout_classifier")

        self._metrics = {
            "documents_classified": 0,
            "classification_failures": 0,
            "enhancement_attempts": 0,
            "enhancement_failures": 0,
            "layout_types": {},
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def classify(self, content: Union[PdfContent, SpreadsheetContent, dict[str, Any]]) -> LayoutDescriptor:
        """Classify decoded content. Never raises."""
        kind = self._claimed_kind(content)
        try:
            if isinstance(content, dict):
                content = _content_adapter.validate_python(content)

            if isinstance(content, PdfContent):
                descriptor = self._classify_pdf(content)
            elif isinstance(content, SpreadsheetContent):
                descriptor = self._classify_spreadsheet(content)
            else:
                descriptor = self._failure(
                    kind, f"Unsupported content type: {type(content).__name__}"
                )
        except ValidationError as e:
            descriptor = self._failure(kind, f"Content is not valid for its kind: {e.error_count()} errors")
        except Exception as e:
            self.logger.warning("Layout classification failed", error=str(e), document_kind=kind.value)
            descriptor = self._failure(kind, str(e))

        self._track(descriptor)
        return descriptor

    async def analyze(self, content: Union[PdfContent, SpreadsheetContent, dict[str, Any]]) -> LayoutDescriptor:
        """Classify, optionally enhance, and record the layout pattern."""
        descriptor = self.classify(content)

        if self._should_enhance(descriptor):
            descriptor = await self._enhance(descriptor, content)

        if (
            self.pattern_repository is not None
            and descriptor.error is None
            and descriptor.confidence >= self.settings.pattern_store_threshold
        ):
            self.pattern_repository.record(descriptor)

        return descriptor

    def get_metrics(self) -> dict:
        metrics = dict(self._metrics)
        metrics["layout_types"] = dict(self._metrics["layout_types"])
        if self.pattern_repository is not None:
            metrics["patterns"] = self.pattern_repository.get_statistics()
        return metrics

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    def _classify_pdf(self, content: PdfContent) -> LayoutDescriptor:
        lines = [line.strip() for line in content.lines if line.strip()]
        signals = analyze_pdf_lines(lines, content.page_count, self.settings.tabular_sample_size)
        decision = first_match(PDF_RULES, signals)

        return LayoutDescriptor(
            document_kind=DocumentKind.PDF,
            layout_type=decision.layout_type,
            subtype=decision.subtype,
            confidence=self._pdf_confidence(signals, decision),
            characteristics={
                "rule": decision.rule,
                **signals.model_dump(exclude={"price_patterns"}),
            },
            price_patterns=signals.price_patterns,
            processing_hints=self._pdf_hints(decision, signals),
        )

    @staticmethod
    def _pdf_confidence(signals: PdfSignals, decision: LayoutDecision) -> float:
        confidence = 0.5 + decision.strength * 0.3

        references = signals.price_patterns.total_price_references
        if references > 5:
            confidence += min(0.2, references / 50)

        if signals.consistency > 0.7:
            confidence += 0.2

        if decision.layout_type == LayoutType.UNKNOWN:
            confidence *= 0.5

        return round(max(0.0, min(1.0, confidence)), 4)

    @staticmethod
    def _pdf_hints(decision: LayoutDecision, signals: PdfSignals) -> dict[str, Any]:
        hints: dict[str, Any] = {
            "strategy": processing_strategy_for(decision.layout_type),
            "preprocessing": [],
            "extraction": [],
        }
        if decision.layout_type == LayoutType.TABLE:
            hints["preprocessing"] = ["normalize_spacing", "detect_columns"]
            hints["extraction"] = ["column_based_extraction"]
        elif decision.layout_type == LayoutType.MULTI_COLUMN:
            hints["preprocessing"] = ["reconstruct_columns", "merge_fragments"]
            hints["extraction"] = ["sequential_processing"]
        elif decision.layout_type == LayoutType.CATALOG:
            hints["preprocessing"] = ["identify_product_blocks"]
            hints["extraction"] = ["block_based_extraction"]
        else:
            hints["preprocessing"] = ["clean_text"]
            hints["extraction"] = ["pattern_matching"]

        if signals.price_patterns.has_new_rrp:
            hints["extraction"].append("prioritize_new_rrp")
        return hints

    # ------------------------------------------------------------------
    # Spreadsheet
    # ------------------------------------------------------------------

    def _classify_spreadsheet(self, content: SpreadsheetContent) -> LayoutDescriptor:
        sheets = [analyze_sheet(name, rows) for name, rows in content.sheets.items()]
        primary = identify_primary_sheet(sheets)
        decision = first_match(SPREADSHEET_RULES, SpreadsheetSignals(sheets=sheets, primary=primary))

        column_structure = None
        if primary is not None:
            column_structure = ColumnStructure(
                sheet_count=len(sheets),
                column_count=primary.column_count,
                price_column_count=len(primary.price_columns),
                has_headers=primary.headers.detected,
                data_quality=primary.data_structure.data_quality,
            )

        hints: dict[str, Any] = {"strategy": "excel_structured", "processing": []}
        if primary is not None:
            hints["primary_sheet"] = primary.name
            hints["header_row"] = primary.headers.row
            hints["price_columns"] = [signal.column for signal in primary.price_columns]
        if decision.layout_type == LayoutType.MULTI_SHEET:
            hints["processing"].append("multi_sheet_consolidation")
        if any(len(sheet.price_columns) >= 2 for sheet in sheets):
            hints["processing"].append("multi_price_handling")

        return LayoutDescriptor(
            document_kind=DocumentKind.SPREADSHEET,
            layout_type=decision.layout_type,
            subtype=decision.subtype,
            confidence=self._spreadsheet_confidence(primary, decision),
            characteristics={
                "rule": decision.rule,
                "sheet_count": len(sheets),
                "primary_sheet": primary.name if primary else None,
                "sheets": [sheet.model_dump() for sheet in sheets],
            },
            column_structure=column_structure,
            processing_hints=hints,
        )

    @staticmethod
    def _spreadsheet_confidence(primary, decision: LayoutDecision) -> float:
        confidence = 0.5
        if primary is not None:
            confidence += primary.data_structure.data_quality * 0.2
            if primary.headers.detected:
                confidence += 0.2
            confidence += min(0.2, len(primary.price_columns) * 0.1)
            confidence -= primary.empty_ratio * 0.3

        if decision.layout_type == LayoutType.UNKNOWN:
            confidence *= 0.5

        return round(min(1.0, max(FAILURE_CONFIDENCE, confidence)), 4)

    # ------------------------------------------------------------------
    # Enhancement
    # ------------------------------------------------------------------

    def _should_enhance(self, descriptor: LayoutDescriptor) -> bool:
        return (
            self.enhancer is not None
            and self.settings.enable_ai_enhancement
            and descriptor.error is None
            and descriptor.confidence < self.settings.enhancement_threshold
        )

    async def _enhance(self, descriptor: LayoutDescriptor, content) -> LayoutDescriptor:
        self._metrics["enhancement_attempts"] += 1
        try:
            if isinstance(content, dict):
                content = _content_adapter.validate_python(content)
            return await self.enhancer.enhance(descriptor, content)
        except Exception as e:
            # enhancement is optional; keep the deterministic result
            self._metrics["enhancement_failures"] += 1
            self.logger.warning(
                "Layout enhancement failed",
                layout_type=descriptor.layout_type.value,
                error=str(e),
            )
            return descriptor

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _claimed_kind(content: Any) -> DocumentKind:
        if isinstance(content, PdfContent):
            return DocumentKind.PDF
        if isinstance(content, SpreadsheetContent):
            return DocumentKind.SPREADSHEET
        if isinstance(content, dict):
            try:
                return DocumentKind(content.get("kind"))
            except ValueError:
                return DocumentKind.UNKNOWN
        return DocumentKind.UNKNOWN

    @staticmethod
    def _failure(kind: DocumentKind, error: str) -> LayoutDescriptor:
        return LayoutDescriptor(
            document_kind=kind,
            layout_type=LayoutType.UNKNOWN,
            subtype="error",
            confidence=FAILURE_CONFIDENCE,
            error=error,
        )

    def _track(self, descriptor: LayoutDescriptor) -> None:
        self._metrics["documents_classified"] += 1
        if descriptor.error is not None:
            self._metrics["classification_failures"] += 1
        layout_types = self._metrics["layout_types"]
        key = descriptor.layout_type.value
        layout_types[key] = layout_types.get(key, 0) + 1
