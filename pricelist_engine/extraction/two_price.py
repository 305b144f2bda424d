"""
Cascade for suppliers that publish superseded and current prices side by side.

Such sheets print an old and a new recommended retail price next to each
product without labelling the columns on the product lines. The cascade is an
ordered chain of (predicate, handler) rules tried per cleaned line; the first
handler that produces products wins and may consume the following lines.
Lines no rule accepts go through the generic per-line resolution.
"""
import re
from typing import Callable, Optional, Sequence

import structlog
from pydantic import BaseModel, Field

from pricelist_engine.config.settings import ExtractionSettings
from pricelist_engine.extraction.patterns import (
    clean_product_name,
    currency_amounts,
    currency_code,
    is_usable_name,
    parse_price,
)
from pricelist_engine.extraction.pdf_strategies import (
    GenericStrategy,
    Locus,
    PdfExtractionStrategy,
    StrategyOutcome,
    build_product,
)
from pricelist_engine.extraction.resolution import select_best_price
from pricelist_engine.models.domain import (
    CurrentPricePosition,
    PriceCandidate,
    PriceKind,
    ProductCandidate,
    SourceLocation,
    TemplateConfig,
)

logger = structlog.get_logger(__name__)

MIN_LINE_LENGTH = 10
MIN_NAME_LINE_LENGTH = 10
MAX_LOOKAHEAD = 3
FALLBACK_MIN_LINE_LENGTH = 20
FALLBACK_MIN_NAME_LENGTH = 5

OLD_RRP_CONFIDENCE = 0.85
NEW_RRP_CONFIDENCE = 0.95
SINGLE_PRICE_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.5
UNSELECTED_CONFIDENCE = 0.6

COLUMN_HEADER = re.compile(r"\b(?:old|new)\s+rrp\b", re.IGNORECASE)


class CascadeLine(BaseModel):
    index: int = Field(..., ge=0, description="Original line index")
    text: str


class CascadeMatch(BaseModel):
    products: list[ProductCandidate] = Field(default_factory=list)
    last_consumed: int = Field(..., ge=0, description="Position in the cleaned line list")


class CascadeRule:
    """A named (predicate, handler) pair over one cleaned line"""

    def __init__(
        self,
        name: str,
        predicate: Callable[[str], bool],
        handler: Callable[[Sequence[CascadeLine], int, TemplateConfig], Optional[CascadeMatch]],
    ) -> None:
        self.name = name
        self.predicate = predicate
        self.handler = handler


def is_price_only(text: str) -> bool:
    """A line holding one or two currency amounts and nothing else"""
    matches = currency_amounts(text)
    if not 1 <= len(matches) <= 2:
        return False
    remainder = text
    for match in reversed(matches):
        remainder = remainder[: match.start()] + remainder[match.end():]
    return remainder.strip() == ""


def clean_lines(lines: Sequence[tuple[int, str]]) -> list[CascadeLine]:
    """Drop blank lines, ``##`` markers and unpriced column-header lines."""
    cleaned = []
    for index, line in lines:
        text = line.strip()
        if not text or "##" in text:
            continue
        if COLUMN_HEADER.search(text) and not currency_amounts(text):
            continue
        cleaned.append(CascadeLine(index=index, text=text))
    return cleaned


class TwoPriceCascade:
    """
    Ordered rule chain selecting the current price from unlabelled pairs.

    Rules, in order:
    - single line: ``name PRICE PRICE``
    - mixed line: ``name PRICE name PRICE PRICE``
    - name line followed within three lines by a price-only line
    - long line with several prices: the current-position price, with reduced confidence
    - anything else: generic per-line resolution
    """

    method_prefix = "two_price"

    def __init__(
        self,
        settings: Optional[ExtractionSettings] = None,
        fallback: Optional[PdfExtractionStrategy] = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.fallback = fallback or GenericStrategy(self.settings)
        self.logger = logger.bind(component="two_price_cascade")
        self.rules = [
            CascadeRule("single_line", lambda text: len(currency_amounts(text)) == 2, self._single_line),
            CascadeRule("mixed_line", lambda text: len(currency_amounts(text)) == 3, self._mixed_line),
            CascadeRule("multi_line", self._is_name_line, self._multi_line),
            CascadeRule("multi_price_fallback", self._is_multi_price_line, self._multi_price_fallback),
            CascadeRule("generic", lambda text: True, self._generic),
        ]

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def extract(self, lines: Sequence[tuple[int, str]], config: TemplateConfig) -> StrategyOutcome:
        outcome = StrategyOutcome()
        cleaned = clean_lines(lines)

        position = 0
        while position < len(cleaned):
            line = cleaned[position]
            if len(line.text) < MIN_LINE_LENGTH:
                position += 1
                continue

            outcome.loci_scanned += 1
            try:
                match = self._apply_rules(cleaned, position, config)
            except Exception as e:
                outcome.errors += 1
                self.logger.warning(
                    "Skipping line after extraction error",
                    line=line.index,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                position += 1
                continue

            if match is None or not match.products:
                outcome.loci_skipped += 1
                position += 1
                continue

            outcome.products.extend(match.products)
            position = match.last_consumed + 1

        self.logger.info(
            "Two-price extraction completed",
            products=len(outcome.products),
            loci=outcome.loci_scanned,
            errors=outcome.errors,
        )
        return outcome

    def _apply_rules(
        self, cleaned: Sequence[CascadeLine], position: int, config: TemplateConfig
    ) -> Optional[CascadeMatch]:
        text = cleaned[position].text
        for rule in self.rules:
            if not rule.predicate(text):
                continue
            match = rule.handler(cleaned, position, config)
            if match is not None and match.products:
                self.logger.debug("Cascade rule matched", rule=rule.name, line=cleaned[position].index)
                return match
        return None

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _single_line(self, cleaned, position, config) -> Optional[CascadeMatch]:
        line = cleaned[position]
        first, second = currency_amounts(line.text)
        if line.text[second.end():].strip() or line.text[first.end(): second.start()].strip():
            return None

        name = clean_product_name(line.text[: first.start()])
        if not self._valid_name(name):
            return None

        product = self._pair_product(
            name, first, second, config, "single_line", SourceLocation(line=line.index, end_line=line.index)
        )
        return CascadeMatch(products=[product], last_consumed=position)

    def _mixed_line(self, cleaned, position, config) -> Optional[CascadeMatch]:
        line = cleaned[position]
        single, old, new = currency_amounts(line.text)
        if line.text[new.end():].strip() or line.text[old.end(): new.start()].strip():
            return None

        first_name = clean_product_name(line.text[: single.start()])
        second_name = clean_product_name(line.text[single.end(): old.start()])
        if not (self._valid_name(first_name) and self._valid_name(second_name)):
            return None

        location = SourceLocation(line=line.index, end_line=line.index)
        price = self._candidate(single, PriceKind.RRP, SINGLE_PRICE_CONFIDENCE)
        first_product = build_product(
            name=first_name,
            selected=price,
            candidates=[price],
            method=f"{self.method_prefix}_mixed_line",
            location=location,
            review_threshold=config.confidence_threshold,
        )
        second_product = self._pair_product(second_name, old, new, config, "mixed_line", location)
        return CascadeMatch(products=[first_product, second_product], last_consumed=position)

    def _multi_line(self, cleaned, position, config) -> Optional[CascadeMatch]:
        name_line = cleaned[position]
        name = clean_product_name(name_line.text)

        for ahead in range(position + 1, min(position + 1 + MAX_LOOKAHEAD, len(cleaned))):
            candidate_line = cleaned[ahead]
            matches = currency_amounts(candidate_line.text)
            if not matches:
                continue
            if not is_price_only(candidate_line.text):
                # prices belong to another product
                return None

            location = SourceLocation(line=name_line.index, end_line=candidate_line.index)
            if len(matches) == 2:
                product = self._pair_product(name, matches[0], matches[1], config, "multi_line", location)
            else:
                price = self._candidate(matches[0], PriceKind.RRP, SINGLE_PRICE_CONFIDENCE)
                product = build_product(
                    name=name,
                    selected=price,
                    candidates=[price],
                    method=f"{self.method_prefix}_multi_line",
                    location=location,
                    review_threshold=config.confidence_threshold,
                )
            return CascadeMatch(products=[product], last_consumed=ahead)
        return None

    def _multi_price_fallback(self, cleaned, position, config) -> Optional[CascadeMatch]:
        line = cleaned[position]
        matches = currency_amounts(line.text)
        name = clean_product_name(line.text[: matches[0].start()])
        if len(name) <= FALLBACK_MIN_NAME_LENGTH:
            return None

        chosen = self._current_index(len(matches), config)
        candidates = [
            self._candidate(match, PriceKind.NEW_RRP, FALLBACK_CONFIDENCE)
            if number == chosen
            else self._candidate(match, PriceKind.GENERIC_PRICE, UNSELECTED_CONFIDENCE)
            for number, match in enumerate(matches)
        ]
        selected = select_best_price(candidates)
        product = build_product(
            name=name,
            selected=selected,
            candidates=candidates,
            method=f"{self.method_prefix}_multi_price_fallback",
            location=SourceLocation(line=line.index, end_line=line.index),
            review_threshold=config.confidence_threshold,
        )
        return CascadeMatch(products=[product], last_consumed=position)

    def _generic(self, cleaned, position, config) -> Optional[CascadeMatch]:
        line = cleaned[position]
        product = self.fallback.extract_locus(
            Locus(lines=[line.text], start_line=line.index, end_line=line.index), config
        )
        if product is None:
            return None
        return CascadeMatch(products=[product], last_consumed=position)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_name_line(text: str) -> bool:
        return len(text) > MIN_NAME_LINE_LENGTH and not currency_amounts(text)

    @staticmethod
    def _is_multi_price_line(text: str) -> bool:
        return len(text) > FALLBACK_MIN_LINE_LENGTH and len(currency_amounts(text)) >= 2

    def _valid_name(self, name: str) -> bool:
        return is_usable_name(name, self.settings.min_name_length) and not currency_amounts(name)

    @staticmethod
    def _current_index(count: int, config: TemplateConfig) -> int:
        if config.current_price_position == CurrentPricePosition.FIRST:
            return 0
        return count - 1

    def _candidate(self, match: re.Match, kind: PriceKind, confidence: float) -> PriceCandidate:
        value = parse_price(match.group("amount"))
        if value is None:
            raise ValueError(f"Unparseable amount: {match.group(0)!r}")
        return PriceCandidate(
            raw_text=match.group(0),
            numeric_value=value,
            currency=currency_code(match.group("currency"), self.settings.default_currency),
            price_kind=kind,
            position=match.start(),
            confidence=confidence,
        )

    def _pair_product(
        self,
        name: str,
        first: re.Match,
        second: re.Match,
        config: TemplateConfig,
        rule: str,
        location: SourceLocation,
    ) -> ProductCandidate:
        if config.current_price_position == CurrentPricePosition.FIRST:
            current, superseded = first, second
        else:
            current, superseded = second, first

        candidates = sorted(
            [
                self._candidate(superseded, PriceKind.OLD_RRP, OLD_RRP_CONFIDENCE),
                self._candidate(current, PriceKind.NEW_RRP, NEW_RRP_CONFIDENCE),
            ],
            key=lambda candidate: candidate.position,
        )
        selected = select_best_price(candidates)
        return build_product(
            name=name,
            selected=selected,
            candidates=candidates,
            method=f"{self.method_prefix}_{rule}",
            location=location,
            review_threshold=config.confidence_threshold,
        )
