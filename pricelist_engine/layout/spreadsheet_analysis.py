"""
Per-sheet structural signals for decoded spreadsheets.
"""
import re
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

HEADER_KEYWORDS = [
    "product", "name", "description", "price", "rrp", "cost",
    "model", "code", "sku", "brand", "category", "qty", "quantity",
    "new", "old", "current", "retail", "wholesale",
]
PRICE_HEADER_KEYWORDS = ("price", "rrp", "cost")
NAME_HEADER_KEYWORDS = ("product", "name", "description", "model")
PRODUCT_TERMS = re.compile(
    r"speaker|amplifier|audio|sound|music|stereo|subwoofer|tweeter|receiver|"
    r"soundbar|headphone|turntable|microphone|projector",
    re.IGNORECASE,
)
CURRENCY_SYMBOL = re.compile(r"[R$€£]")

HEADER_SCAN_ROWS = 5
DATA_SAMPLE_ROWS = 20
PRICE_RANGE = (1, 1_000_000)


class HeaderDetection(BaseModel):
    detected: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    row: int = -1
    score: float = 0.0


class ColumnSignal(BaseModel):
    column: int
    header: str = ""
    confidence: float
    ratio: float = Field(..., description="Numeric ratio (price) or text ratio (name)")
    score: int = 0


class DataStructure(BaseModel):
    has_product_data: bool = False
    data_quality: float = Field(default=0.0, ge=0.0, le=1.0)
    product_indicators: int = 0


class SheetAnalysis(BaseModel):
    """Signals for one worksheet"""

    name: str
    row_count: int
    column_count: int
    headers: HeaderDetection
    price_columns: list[ColumnSignal] = Field(default_factory=list)
    product_columns: list[ColumnSignal] = Field(default_factory=list)
    data_structure: DataStructure
    empty_ratio: float = Field(..., ge=0.0, le=1.0)
    consistency: float = Field(..., ge=0.0, le=1.0)

    @property
    def data_start_row(self) -> int:
        return self.headers.row + 1 if self.headers.detected else 0

    @property
    def primary_score(self) -> float:
        score = 0.0
        if self.data_structure.has_product_data:
            score += 10
        score += len(self.price_columns) * 5
        if self.headers.detected:
            score += 5
        score += min(self.row_count / 100, 5)
        score -= self.empty_ratio * 5
        lowered = self.name.lower()
        if "price" in lowered or "product" in lowered:
            score += 8
        return score


def is_empty(cell: Any) -> bool:
    return cell is None or (isinstance(cell, str) and not cell.strip())


def as_number(cell: Any) -> Optional[float]:
    """Numeric value of a cell that holds a plain number, else None."""
    if isinstance(cell, bool):
        return None
    if isinstance(cell, (int, float, Decimal)):
        return float(cell)
    if isinstance(cell, str):
        text = cell.strip().replace(",", "")
        try:
            return float(text)
        except ValueError:
            return None
    return None


def in_price_range(value: float) -> bool:
    """Whether a numeric cell could be a price, bounds inclusive"""
    return PRICE_RANGE[0] <= value <= PRICE_RANGE[1]


def cell_text(cell: Any) -> str:
    return "" if cell is None else str(cell).strip()


def detect_headers(rows: list[list[Any]]) -> HeaderDetection:
    best_row, best_score = -1, 0.0
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        if not row:
            continue
        text = " ".join(cell_text(cell) for cell in row).lower()
        score: float = sum(1 for keyword in HEADER_KEYWORDS if keyword in text)
        if score >= 3:
            score *= 1.5
        if score > best_score:
            best_row, best_score = index, score

    return HeaderDetection(
        detected=best_score >= 2,
        confidence=min(1.0, best_score / 5),
        row=best_row,
        score=best_score,
    )


def _column_cells(rows: list[list[Any]], column: int, start: int) -> list[Any]:
    cells = []
    for row in rows[start:start + DATA_SAMPLE_ROWS - 1]:
        if column < len(row) and not is_empty(row[column]):
            cells.append(row[column])
    return cells


def _header_label(rows: list[list[Any]], headers: HeaderDetection, column: int) -> str:
    header_row = rows[headers.row] if headers.detected else (rows[0] if rows else [])
    return cell_text(header_row[column]).lower() if column < len(header_row) else ""


def detect_price_columns(
    rows: list[list[Any]], headers: HeaderDetection, column_count: int
) -> list[ColumnSignal]:
    start = headers.row + 1 if headers.detected else 1
    columns = []
    for column in range(column_count):
        header = _header_label(rows, headers, column)
        score = 10 if any(keyword in header for keyword in PRICE_HEADER_KEYWORDS) else 0

        cells = _column_cells(rows, column, start)
        numeric = 0
        for cell in cells:
            value = as_number(cell)
            if value is not None:
                numeric += 1
                if in_price_range(value):
                    score += 1
            if isinstance(cell, str) and CURRENCY_SYMBOL.search(cell):
                score += 2

        ratio = numeric / len(cells) if cells else 0.0
        confidence = ratio * 0.7 + (score / 20) * 0.3
        if confidence > 0.5:
            columns.append(
                ColumnSignal(column=column, header=header, confidence=round(confidence, 4), ratio=ratio, score=score)
            )

    return sorted(columns, key=lambda signal: signal.confidence, reverse=True)


def detect_product_columns(
    rows: list[list[Any]], headers: HeaderDetection, column_count: int
) -> list[ColumnSignal]:
    start = headers.row + 1 if headers.detected else 1
    columns = []
    for column in range(column_count):
        header = _header_label(rows, headers, column)
        score = 10 if any(keyword in header for keyword in NAME_HEADER_KEYWORDS) else 0

        cells = _column_cells(rows, column, start)
        text_cells = 0
        for cell in cells:
            text = cell_text(cell)
            if as_number(cell) is None and len(text) > 3:
                text_cells += 1
                if PRODUCT_TERMS.search(text):
                    score += 2

        ratio = text_cells / len(cells) if cells else 0.0
        confidence = ratio * 0.6 + (score / 20) * 0.4
        if confidence > 0.4:
            columns.append(
                ColumnSignal(column=column, header=header, confidence=round(confidence, 4), ratio=ratio, score=score)
            )

    return sorted(columns, key=lambda signal: signal.confidence, reverse=True)


def analyze_data_structure(rows: list[list[Any]]) -> DataStructure:
    if not rows:
        return DataStructure()

    total = filled = indicators = 0
    for row in rows[:DATA_SAMPLE_ROWS]:
        for cell in row or []:
            total += 1
            if is_empty(cell):
                continue
            filled += 1
            if PRODUCT_TERMS.search(cell_text(cell)):
                indicators += 1

    return DataStructure(
        has_product_data=indicators > 2,
        data_quality=filled / total if total else 0.0,
        product_indicators=indicators,
    )


def empty_ratio(rows: list[list[Any]]) -> float:
    total = empty = 0
    for row in rows:
        for cell in row or []:
            total += 1
            if is_empty(cell):
                empty += 1
    return empty / total if total else 1.0


def row_consistency(rows: list[list[Any]]) -> float:
    if len(rows) < 2:
        return 0.0
    lengths = [len(row or []) for row in rows]
    average = sum(lengths) / len(lengths)
    return sum(1 for length in lengths if abs(length - average) <= 2) / len(lengths)


def analyze_sheet(name: str, rows: list[list[Any]]) -> SheetAnalysis:
    """Compute every signal for one sheet grid."""
    column_count = max((len(row or []) for row in rows), default=0)
    headers = detect_headers(rows)
    price_columns = detect_price_columns(rows, headers, column_count)
    product_columns = detect_product_columns(rows, headers, column_count)

    structure = analyze_data_structure(rows)
    if not structure.has_product_data and price_columns and product_columns:
        structure = structure.model_copy(update={"has_product_data": True})

    return SheetAnalysis(
        name=name,
        row_count=len(rows),
        column_count=column_count,
        headers=headers,
        price_columns=price_columns,
        product_columns=product_columns,
        data_structure=structure,
        empty_ratio=round(empty_ratio(rows), 4),
        consistency=round(row_consistency(rows), 4),
    )


def identify_primary_sheet(sheets: list[SheetAnalysis]) -> Optional[SheetAnalysis]:
    """Best data sheet; the first of equally scored sheets wins."""
    if not sheets:
        return None
    if len(sheets) == 1:
        return sheets[0]
    best = sheets[0]
    for sheet in sheets[1:]:
        if sheet.primary_score > best.primary_score:
            best = sheet
    return best
