"""
Structural signals computed from PDF text lines.

Each analyser is a pure function over the stripped, non-blank lines of a
document and returns a small pydantic signal model. The classifier combines
the signals through its decision rules.
"""
import re
import statistics
from collections import Counter
from typing import Optional

from pydantic import BaseModel, Field

from pricelist_engine.models.domain import PricePatternSummary

COLUMN_GAP = re.compile(r"\t| {3,}")
GUTTER = re.compile(r"\t+| {2,}")
TWO_DECIMAL = re.compile(r"\d+[.,]\d{2}\b")
TABULAR_ROW = re.compile(r"^[A-Z0-9-]+\s+.*\s+R?\s*\d+[.,]\d{2}")
CATALOG_PRICE_LINE = re.compile(r"(?<![A-Za-z])R\s*\d+[.,]\d{2}|\$\s*\d+[.,]\d{2}")
IMAGE_MARKER = re.compile(r"\[image\]|\[photo\]|fig\s*\d+", re.IGNORECASE)

PRODUCT_HEADER_PATTERNS = [
    re.compile(r"^[A-Z0-9-]{3,}\s+"),  # model number at start
    re.compile(r"^\d+\.\s+"),  # numbered list
    re.compile(r"^[A-Z][a-z]+\s+[A-Z]"),  # brand model
]

HEADER_FOOTER_PATTERNS = [
    re.compile(r"page \d+ of \d+", re.IGNORECASE),
    re.compile(r"^\s*\d+\s*$"),
    re.compile(r"copyright|©", re.IGNORECASE),
    re.compile(r"confidential|proprietary", re.IGNORECASE),
    re.compile(r"www\.|http", re.IGNORECASE),
]

_AMOUNT = r"\d{1,3}(?:,\d{3})*(?:\.\d{2})?"
PRICE_VOCABULARY = {
    "r_format": re.compile(rf"(?<![A-Za-z])R\s*{_AMOUNT}"),
    "dollar_format": re.compile(rf"\$\s*{_AMOUNT}"),
    "euro_format": re.compile(rf"€\s*{_AMOUNT}"),
    "plain_decimal": re.compile(r"\b\d{1,3}(?:,\d{3})*\.\d{2}\b"),
    "new_rrp": re.compile(r"new\s+rrp", re.IGNORECASE),
    "old_rrp": re.compile(r"old\s+rrp", re.IGNORECASE),
    "cost": re.compile(r"\bcost\b", re.IGNORECASE),
    "retail": re.compile(r"\bretail\b", re.IGNORECASE),
}
CURRENCY_FORMATS = ("r_format", "dollar_format", "euro_format", "plain_decimal")


class TabularSignal(BaseModel):
    detected: bool = False
    strength: float = Field(default=0.0, ge=0.0, le=1.0)
    score: int = 0
    sample_size: int = 0


class MultiColumnSignal(BaseModel):
    detected: bool = False
    strength: float = Field(default=0.0, ge=0.0, le=1.0)
    alternation_breaks: int = 0
    alignment: float = Field(default=0.0, ge=0.0, le=1.0)


class CatalogSignal(BaseModel):
    detected: bool = False
    strength: float = Field(default=0.0, ge=0.0, le=1.0)
    product_blocks: int = 0
    image_markers: int = 0
    score: int = 0


class PdfSignals(BaseModel):
    """All signals for one PDF"""

    line_count: int
    page_count: int
    average_line_length: float
    tabular: TabularSignal
    multi_column: MultiColumnSignal
    catalog: CatalogSignal
    header_footer_ratio: float
    consistency: float
    price_patterns: PricePatternSummary


def is_product_header(line: str) -> bool:
    return any(pattern.search(line) for pattern in PRODUCT_HEADER_PATTERNS)


def is_header_footer_line(line: str) -> bool:
    return any(pattern.search(line) for pattern in HEADER_FOOTER_PATTERNS)


def _line_shape(line: str) -> tuple[bool, bool, bool]:
    return (
        bool(TWO_DECIMAL.search(line)),
        bool(COLUMN_GAP.search(line)),
        bool(PRODUCT_HEADER_PATTERNS[0].search(line)),
    )


def layout_consistency(lines: list[str]) -> float:
    """Blend of dominant line-shape share and line-length regularity."""
    if not lines:
        return 0.0
    if len(lines) == 1:
        return 1.0

    shapes = Counter(_line_shape(line) for line in lines)
    dominant_share = shapes.most_common(1)[0][1] / len(lines)

    lengths = [len(line) for line in lines]
    mean_length = statistics.fmean(lengths)
    variation = statistics.pstdev(lengths) / mean_length if mean_length else 1.0
    regularity = max(0.0, 1.0 - variation)

    return round(0.5 * dominant_share + 0.5 * regularity, 4)


def analyze_tabularity(lines: list[str], sample_size: int = 50) -> TabularSignal:
    sample = lines[:sample_size]
    if not sample:
        return TabularSignal()

    score = 0
    for line in sample:
        if COLUMN_GAP.search(line):
            score += 1
        if len(TWO_DECIMAL.findall(line)) >= 2:
            score += 2
        if TABULAR_ROW.search(line):
            score += 2

    size = len(sample)
    return TabularSignal(
        detected=score > size * 0.3,
        strength=min(1.0, score / (size * 0.5)),
        score=score,
        sample_size=size,
    )


def _gutter_positions(line: str) -> list[int]:
    return [match.end() for match in GUTTER.finditer(line) if match.start() > 0]


def gutter_alignment(lines: list[str]) -> float:
    """Share of lines with a column gutter at the modal gutter offset (±1)."""
    if not lines:
        return 0.0

    per_line = [_gutter_positions(line) for line in lines]
    positions = Counter(pos for line_positions in per_line for pos in line_positions)
    if not positions:
        return 0.0

    modal = positions.most_common(1)[0][0]
    aligned = sum(
        1 for line_positions in per_line if any(abs(pos - modal) <= 1 for pos in line_positions)
    )
    return aligned / len(lines)


def analyze_multi_column(lines: list[str]) -> MultiColumnSignal:
    if len(lines) < 2:
        return MultiColumnSignal()

    average = statistics.fmean(len(line) for line in lines)
    breaks = sum(
        1
        for current, following in zip(lines, lines[1:])
        if len(current) < average * 0.5 and len(following) > average * 0.8
    )
    alignment = gutter_alignment(lines)

    return MultiColumnSignal(
        detected=breaks > 3 or alignment > 0.6,
        strength=min(1.0, breaks / 10 + alignment),
        alternation_breaks=breaks,
        alignment=round(alignment, 4),
    )


def analyze_catalog(lines: list[str]) -> CatalogSignal:
    blocks = 0
    score = 0
    images = 0

    index = 0
    while index < len(lines):
        line = lines[index]
        if IMAGE_MARKER.search(line):
            images += 1
            score += 1

        if index + 2 < len(lines) and is_product_header(line):
            description, price_line = lines[index + 1], lines[index + 2]
            if len(description) > len(line) * 1.5 and CATALOG_PRICE_LINE.search(price_line):
                blocks += 1
                score += 3
                index += 3
                continue
        index += 1

    return CatalogSignal(
        detected=blocks > 3,
        strength=min(1.0, blocks / 10),
        product_blocks=blocks,
        image_markers=images,
        score=score,
    )


def header_footer_ratio(lines: list[str]) -> float:
    if not lines:
        return 0.0
    return sum(1 for line in lines if is_header_footer_line(line)) / len(lines)


def analyze_price_patterns(lines: list[str]) -> PricePatternSummary:
    counts = {name: 0 for name in PRICE_VOCABULARY}
    for line in lines:
        for name, regex in PRICE_VOCABULARY.items():
            counts[name] += len(regex.findall(line))

    primary: Optional[str] = None
    best = 0
    for name in CURRENCY_FORMATS:
        if counts[name] > best:
            primary, best = name, counts[name]

    total = sum(counts.values())
    return PricePatternSummary(
        **counts,
        primary_format=primary,
        total_price_references=total,
        price_density=round(total / len(lines), 4) if lines else 0.0,
    )


def analyze_pdf_lines(
    lines: list[str], page_count: int = 1, sample_size: int = 50
) -> PdfSignals:
    """Compute every PDF signal for already-cleaned lines."""
    return PdfSignals(
        line_count=len(lines),
        page_count=page_count,
        average_line_length=round(statistics.fmean(len(line) for line in lines), 2)
        if lines
        else 0.0,
        tabular=analyze_tabularity(lines, sample_size),
        multi_column=analyze_multi_column(lines),
        catalog=analyze_catalog(lines),
        header_footer_ratio=round(header_footer_ratio(lines), 4),
        consistency=layout_consistency(lines[:sample_size]),
        price_patterns=analyze_price_patterns(lines),
    )
