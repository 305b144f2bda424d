"""
Price extraction entry point.

Dispatches decoded content to the strategy matching its layout and the
template's price policy, then assembles the run result: products, recognised
price sources, the 0-100 run confidence and per-run statistics.
"""
import time
from typing import Any, Optional, Union

import structlog
from pydantic import TypeAdapter, ValidationError

from pricelist_engine.config.settings import ExtractionSettings
from pricelist_engine.core.exceptions import UnsupportedFormatError
from pricelist_engine.extraction.pdf_strategies import GenericStrategy, StrategyOutcome, strategy_for
from pricelist_engine.extraction.resolution import calculate_run_confidence
from pricelist_engine.extraction.spreadsheet import SpreadsheetExtractor
from pricelist_engine.extraction.two_price import TwoPriceCascade
from pricelist_engine.layout.pdf_analysis import is_header_footer_line
from pricelist_engine.models.domain import (
    DocumentContent,
    ExtractionResult,
    ExtractionStatistics,
    LayoutDescriptor,
    PdfContent,
    PriceColumn,
    PriceKind,
    PricePolicy,
    ProductCandidate,
    SpreadsheetContent,
    Template,
    TemplateConfig,
)

logger = structlog.get_logger(__name__)

_content_adapter = TypeAdapter(DocumentContent)


def drop_ignored_lines(lines: list[str], skip_sections: list[str]) -> list[tuple[int, str]]:
    """Indexed non-blank lines without header/footer or skipped-section lines."""
    prefixes = tuple(section.strip().lower() for section in skip_sections if section.strip())
    kept = []
    for index, line in enumerate(lines):
        text = line.strip()
        if not text or is_header_footer_line(text):
            continue
        if prefixes and text.lower().startswith(prefixes):
            continue
        kept.append((index, line))
    return kept


def pdf_price_columns(products: list[ProductCandidate]) -> list[PriceColumn]:
    """Distinct price kinds seen across the candidates of emitted products."""
    kinds = {candidate.price_kind for product in products for candidate in product.all_price_candidates}
    return [
        PriceColumn(price_kind=kind, label=kind.value)
        for kind in sorted(kinds, key=lambda kind: -kind.priority)
    ]


class PriceExtractor:
    """
    Extracts ranked product candidates from classified content.

    The extractor holds no per-document state; cumulative counters are kept
    for ``get_metrics()`` only.
    """

    def __init__(self, settings: Optional[ExtractionSettings] = None) -> None:
        self.settings = settings or ExtractionSettings()
        self.spreadsheet_extractor = SpreadsheetExtractor(self.settings)
        self.logger = logger.bind(component="price_extractor")

        self._metrics: dict[str, Any] = {
            "documents_processed": 0,
            "products_extracted": 0,
            "locus_errors": 0,
            "methods": {},
            "total_processing_time_ms": 0.0,
        }

    def extract(
        self,
        content: Union[PdfContent, SpreadsheetContent, dict[str, Any]],
        descriptor: LayoutDescriptor,
        template: Optional[Template] = None,
    ) -> ExtractionResult:
        """
        Extract products from decoded content.

        Args:
            content: PDF lines or spreadsheet grids
            descriptor: Layout classification of the same content
            template: Template whose config drives thresholds and policies

        Returns:
            Extraction result with products and run confidence

        Raises:
            UnsupportedFormatError: If the content is neither PDF nor spreadsheet
        """
        start_time = time.time()
        content = self._coerce(content)
        config = template.config if template is not None else TemplateConfig()

        extract_logger = self.logger.bind(
            document_kind=content.kind,
            layout_type=descriptor.layout_type.value,
            template_id=template.id if template is not None else None,
        )

        if isinstance(content, PdfContent):
            outcome, method = self._extract_pdf(content, descriptor, config)
            price_columns = pdf_price_columns(outcome.products)
        else:
            outcome, price_columns = self.spreadsheet_extractor.extract(content.sheets, config)
            method = self.spreadsheet_extractor.method

        result = ExtractionResult(
            products=outcome.products,
            price_columns_found=price_columns,
            confidence=calculate_run_confidence(outcome.products, price_columns),
            extraction_method=method,
            statistics=self._statistics(outcome),
        )

        processing_time_ms = (time.time() - start_time) * 1000
        self._track(result, processing_time_ms)
        extract_logger.info(
            "Extraction completed",
            method=method,
            products=len(result.products),
            confidence=result.confidence,
            errors=outcome.errors,
            processing_time_ms=round(processing_time_ms, 2),
        )
        return result

    def get_metrics(self) -> dict[str, Any]:
        metrics = dict(self._metrics)
        metrics["methods"] = dict(self._metrics["methods"])
        processed = metrics["documents_processed"]
        metrics["average_products_per_document"] = (
            metrics["products_extracted"] / processed if processed else 0.0
        )
        return metrics

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce(content: Any) -> Union[PdfContent, SpreadsheetContent]:
        if isinstance(content, (PdfContent, SpreadsheetContent)):
            return content

        if isinstance(content, dict):
            try:
                return _content_adapter.validate_python(content)
            except ValidationError as e:
                raise UnsupportedFormatError(
                    "Content could not be interpreted as a PDF or spreadsheet",
                    document_kind=str(content.get("kind")),
                    original_exception=e,
                ) from e

        raise UnsupportedFormatError(
            f"Unsupported content type: {type(content).__name__}",
            document_kind=type(content).__name__,
        )

    def _extract_pdf(
        self, content: PdfContent, descriptor: LayoutDescriptor, config: TemplateConfig
    ) -> tuple[StrategyOutcome, str]:
        lines = drop_ignored_lines(content.lines, config.skip_sections)

        if config.price_policy == PricePolicy.TWO_PRICE:
            cascade = TwoPriceCascade(self.settings, fallback=GenericStrategy(self.settings))
            return cascade.extract(lines, config), "two_price_pdf"

        strategy = strategy_for(descriptor.layout_type, self.settings)
        return strategy.extract(lines, config), strategy.method

    @staticmethod
    def _statistics(outcome: StrategyOutcome) -> ExtractionStatistics:
        distribution: dict[str, int] = {}
        new_rrp = old_rrp = 0
        for product in outcome.products:
            key = product.price_kind.value
            distribution[key] = distribution.get(key, 0) + 1
            kinds = {candidate.price_kind for candidate in product.all_price_candidates}
            if PriceKind.NEW_RRP in kinds:
                new_rrp += 1
            if PriceKind.OLD_RRP in kinds:
                old_rrp += 1

        return ExtractionStatistics(
            total_products=len(outcome.products),
            loci_scanned=outcome.loci_scanned,
            loci_skipped=outcome.loci_skipped,
            errors=outcome.errors,
            new_rrp_detected=new_rrp,
            old_rrp_detected=old_rrp,
            price_kind_distribution=distribution,
        )

    def _track(self, result: ExtractionResult, processing_time_ms: float) -> None:
        self._metrics["documents_processed"] += 1
        self._metrics["products_extracted"] += len(result.products)
        self._metrics["locus_errors"] += result.statistics.errors
        self._metrics["total_processing_time_ms"] += processing_time_ms
        methods = self._metrics["methods"]
        methods[result.extraction_method] = methods.get(result.extraction_method, 0) + 1
