"""
Per-layout extraction strategies for PDF text.

Each strategy splits the cleaned lines into loci (single lines, reconstructed
column groups or catalog blocks), finds every price candidate in a locus and
resolves them to one selected price. A locus that raises is logged and
skipped; a locus without a usable candidate is simply not a product.
"""
from abc import ABC, abstractmethod
from typing import Iterator, Optional, Sequence

import structlog
from pydantic import BaseModel, Field

from pricelist_engine.config.settings import ExtractionSettings
from pricelist_engine.extraction.patterns import (
    clean_product_name,
    extract_specifications,
    find_price_candidates,
    has_currency_amount,
    is_price_line,
    is_usable_name,
    looks_like_product_start,
)
from pricelist_engine.extraction.resolution import select_best_price
from pricelist_engine.models.domain import (
    ExtractionStrategy,
    LayoutType,
    PriceCandidate,
    ProductCandidate,
    SourceLocation,
    TemplateConfig,
)

logger = structlog.get_logger(__name__)

AGGRESSIVE_RELAXATION = 0.1
MIN_TABLE_LINE_LENGTH = 10
MIN_DESCRIPTION_LINE_LENGTH = 30


class Locus(BaseModel):
    """Minimal extraction unit"""

    lines: list[str] = Field(..., min_length=1)
    start_line: int = Field(..., ge=0)
    end_line: int = Field(..., ge=0)
    block: Optional[int] = None

    @property
    def text(self) -> str:
        return " ".join(line.strip() for line in self.lines)


class StrategyOutcome(BaseModel):
    """Products and counters produced by one strategy run"""

    products: list[ProductCandidate] = Field(default_factory=list)
    loci_scanned: int = 0
    loci_skipped: int = 0
    errors: int = 0


def derive_name(text: str, selected: PriceCandidate, candidates: Sequence[PriceCandidate], offset: int = 0) -> str:
    """Text preceding the selected price with every other matched price text removed."""
    name = text[: max(0, selected.position - offset)]
    for candidate in candidates:
        if candidate is not selected and candidate.raw_text:
            name = name.replace(candidate.raw_text, " ")
    return clean_product_name(name)


def strip_prices(text: str, candidates: Sequence[PriceCandidate]) -> str:
    for candidate in candidates:
        text = text.replace(candidate.raw_text, " ")
    return clean_product_name(text)


def build_product(
    name: str,
    selected: PriceCandidate,
    candidates: Sequence[PriceCandidate],
    method: str,
    location: SourceLocation,
    review_threshold: float,
    description: Optional[str] = None,
    specs: Optional[list[str]] = None,
) -> ProductCandidate:
    """Assemble a product, flagging it for review below the template threshold."""
    return ProductCandidate(
        name=name,
        selected_price=selected,
        all_price_candidates=list(candidates),
        description=description if description is not None else name,
        specs=specs or [],
        source_location=location,
        extraction_method=method,
        confidence=selected.confidence,
        needs_review=selected.confidence < review_threshold,
    )


class PdfExtractionStrategy(ABC):
    """
    Base class for PDF layout strategies.

    Subclasses define how lines are grouped into loci and may override how a
    single locus becomes a product. Thresholds are inclusive.
    """

    name: str = "generic"
    method: str = "generic_pdf"
    base_threshold: float = 0.6

    def __init__(self, settings: Optional[ExtractionSettings] = None) -> None:
        self.settings = settings or ExtractionSettings()
        self.logger = logger.bind(component="pdf_strategy", strategy=self.name)

    def threshold(self, config: TemplateConfig) -> float:
        if config.strategy == ExtractionStrategy.AGGRESSIVE:
            return round(self.base_threshold - AGGRESSIVE_RELAXATION, 4)
        return self.base_threshold

    def extract(self, lines: Sequence[tuple[int, str]], config: TemplateConfig) -> StrategyOutcome:
        """
        Run the strategy over indexed lines.

        Args:
            lines: (original line index, text) pairs already cleaned of
                header/footer and skipped sections
            config: Template configuration driving thresholds

        Returns:
            Strategy outcome with products and per-locus counters
        """
        outcome = StrategyOutcome()

        for locus in self.loci(lines, config):
            outcome.loci_scanned += 1
            try:
                product = self.extract_locus(locus, config)
            except Exception as e:
                outcome.errors += 1
                self.logger.warning(
                    "Skipping locus after extraction error",
                    line=locus.start_line,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if product is None:
                outcome.loci_skipped += 1
            else:
                outcome.products.append(product)

        self.logger.debug(
            "Strategy completed",
            products=len(outcome.products),
            loci=outcome.loci_scanned,
            errors=outcome.errors,
        )
        return outcome

    @abstractmethod
    def loci(self, lines: Sequence[tuple[int, str]], config: TemplateConfig) -> Iterator[Locus]:
        """Group lines into extraction loci"""

    def extract_locus(self, locus: Locus, config: TemplateConfig) -> Optional[ProductCandidate]:
        text = locus.text
        candidates = find_price_candidates(text, self.settings.default_currency)
        selected = self._select(candidates, config)
        if selected is None:
            return None

        name = self.product_name(locus, text, selected, candidates)
        # PDF names must be longer than the minimum
        if not is_usable_name(name, self.settings.min_name_length + 1):
            return None

        return build_product(
            name=name,
            selected=selected,
            candidates=candidates,
            method=self.method,
            location=SourceLocation(line=locus.start_line, end_line=locus.end_line, block=locus.block),
            review_threshold=config.confidence_threshold,
            specs=extract_specifications(text),
        )

    def product_name(
        self, locus: Locus, text: str, selected: PriceCandidate, candidates: Sequence[PriceCandidate]
    ) -> str:
        return derive_name(text, selected, candidates)

    def _select(self, candidates: Sequence[PriceCandidate], config: TemplateConfig) -> Optional[PriceCandidate]:
        selected = select_best_price(candidates)
        if selected is None:
            return None
        if selected.numeric_value > self.settings.max_valid_price:
            return None
        if selected.confidence < self.threshold(config):
            return None
        return selected

    @staticmethod
    def single_line_loci(lines: Sequence[tuple[int, str]], min_length: int = 0) -> Iterator[Locus]:
        for index, line in lines:
            text = line.strip()
            if not text or len(text) < min_length:
                continue
            yield Locus(lines=[text], start_line=index, end_line=index)

    @staticmethod
    def product_start_groups(lines: Sequence[tuple[int, str]]) -> Iterator[list[tuple[int, str]]]:
        """
        Runs of lines making up one product each.

        A group closes at the next product-start line, or at the first text
        line after the group has seen a price. Price-only lines such as
        ``RRP R1,499.00`` never open a group and rule lines are dropped.
        """
        group: list[tuple[int, str]] = []
        priced = False
        for index, line in lines:
            if not clean_product_name(line):
                continue
            if is_price_line(line):
                if group:
                    group.append((index, line))
                    priced = True
                continue
            if group and (priced or looks_like_product_start(line)):
                yield group
                group = []
                priced = False
            group.append((index, line))
            priced = priced or bool(find_price_candidates(line))
        if group:
            yield group


class TableStrategy(PdfExtractionStrategy):
    name = "table"
    method = "table_pdf"
    base_threshold = 0.5

    def loci(self, lines, config):
        min_length = 0 if config.strategy == ExtractionStrategy.AGGRESSIVE else MIN_TABLE_LINE_LENGTH
        return self.single_line_loci(lines, min_length)


class MultiColumnStrategy(PdfExtractionStrategy):
    """Reconstructs products whose text was fragmented across columns"""

    name = "multi_column"
    method = "multi_column_pdf"
    base_threshold = 0.4

    def loci(self, lines, config):
        for group in self.product_start_groups(lines):
            yield Locus(
                lines=[line for _, line in group],
                start_line=group[0][0],
                end_line=group[-1][0],
            )

    def product_name(self, locus, text, selected, candidates):
        name = strip_prices(locus.lines[0], candidates)
        return name or derive_name(text, selected, candidates)


class CatalogStrategy(PdfExtractionStrategy):
    """Block-based extraction for product catalogs"""

    name = "catalog"
    method = "catalog_pdf"
    base_threshold = 0.3

    def loci(self, lines, config):
        separator = config.block_separator or self.settings.block_separator

        if any(separator in line for _, line in lines):
            blocks = self._split_on_separator(lines, separator)
        else:
            blocks = list(self.product_start_groups(lines))

        for number, block in enumerate(blocks):
            yield Locus(
                lines=[line for _, line in block],
                start_line=block[0][0],
                end_line=block[-1][0],
                block=number,
            )

    @staticmethod
    def _split_on_separator(lines, separator: str) -> list[list[tuple[int, str]]]:
        blocks: list[list[tuple[int, str]]] = []
        current: list[tuple[int, str]] = []
        for index, line in lines:
            if separator in line:
                if current:
                    blocks.append(current)
                current = []
            elif line.strip():
                current.append((index, line))
        if current:
            blocks.append(current)
        return blocks

    def extract_locus(self, locus, config):
        text = locus.text
        candidates = find_price_candidates(text, self.settings.default_currency)
        selected = self._select(candidates, config)
        if selected is None:
            return None

        name = self.product_name(locus, text, selected, candidates)
        # PDF names must be longer than the minimum
        if not is_usable_name(name, self.settings.min_name_length + 1):
            return None

        description_lines = [
            line.strip()
            for line in locus.lines
            if len(line.strip()) > MIN_DESCRIPTION_LINE_LENGTH
            and not looks_like_product_start(line)
            and not has_currency_amount(line)
        ]
        specs: list[str] = []
        for line in locus.lines:
            for spec in extract_specifications(line):
                if spec not in specs:
                    specs.append(spec)

        return build_product(
            name=name,
            selected=selected,
            candidates=candidates,
            method=self.method,
            location=SourceLocation(line=locus.start_line, end_line=locus.end_line, block=locus.block),
            review_threshold=config.confidence_threshold,
            description=" ".join(description_lines) or None,
            specs=specs,
        )

    def product_name(self, locus, text, selected, candidates):
        for line in locus.lines:
            if looks_like_product_start(line):
                return strip_prices(line, candidates)
        return strip_prices(locus.lines[0], candidates)


class GenericStrategy(PdfExtractionStrategy):
    """Per-line extraction for lists, documents and unknown layouts"""

    name = "generic"
    method = "generic_pdf"
    base_threshold = 0.6

    def loci(self, lines, config):
        return self.single_line_loci(lines)


STRATEGIES_BY_LAYOUT: dict[LayoutType, type[PdfExtractionStrategy]] = {
    LayoutType.TABLE: TableStrategy,
    LayoutType.MULTI_COLUMN: MultiColumnStrategy,
    LayoutType.CATALOG: CatalogStrategy,
}


def strategy_for(layout_type: LayoutType, settings: Optional[ExtractionSettings] = None) -> PdfExtractionStrategy:
    strategy_class = STRATEGIES_BY_LAYOUT.get(layout_type, GenericStrategy)
    return strategy_class(settings)
