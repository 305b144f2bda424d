"""
Row-based price extraction from spreadsheet grids.
"""
import re
from typing import Any, Optional, Sequence

import structlog
from pydantic import BaseModel, Field

from pricelist_engine.config.settings import ExtractionSettings
from pricelist_engine.extraction.patterns import (
    currency_code,
    extract_specifications,
    is_usable_name,
    parse_price,
)
from pricelist_engine.extraction.pdf_strategies import StrategyOutcome, build_product
from pricelist_engine.extraction.resolution import select_best_price
from pricelist_engine.layout.spreadsheet_analysis import as_number, cell_text, detect_headers, in_price_range, is_empty
from pricelist_engine.models.domain import (
    ColumnMapping,
    PriceCandidate,
    PriceColumn,
    PriceKind,
    ProductCandidate,
    SourceLocation,
    TemplateConfig,
)

logger = structlog.get_logger(__name__)

CELL_PRICE_CONFIDENCE = 0.9
POSITIONAL_SAMPLE_ROWS = 5
CURRENCY_PREFIX = re.compile(r"^\s*(R|\$|€|£)")

# Checked in order, the first matching label wins
HEADER_PRICE_KINDS: list[tuple[tuple[str, ...], PriceKind]] = [
    (("new rrp", "new_rrp", "newrrp", "new price"), PriceKind.NEW_RRP),
    (("current rrp", "current_rrp", "current price"), PriceKind.CURRENT_PRICE),
    (("old rrp", "old_rrp", "oldrrp", "old price", "previous"), PriceKind.OLD_RRP),
    (("rrp", "recommended retail price", "msrp"), PriceKind.RRP),
    (("retail price", "retail_price", "retail", "selling"), PriceKind.RETAIL_PRICE),
    (("cost", "wholesale", "dealer"), PriceKind.COST_PRICE),
    (("price", "amount", "value"), PriceKind.GENERIC_PRICE),
]
NAME_HEADERS = ("product", "name", "description", "item", "model")
DESCRIPTION_HEADERS = ("description", "desc")


class ColumnRoles(BaseModel):
    """Column indexes resolved for one sheet"""

    name_columns: list[int] = Field(default_factory=list)
    description_columns: list[int] = Field(default_factory=list)
    price_columns: list[PriceColumn] = Field(default_factory=list)
    header_row: int = -1
    source: str = "none"

    @property
    def data_start_row(self) -> int:
        return self.header_row + 1 if self.header_row >= 0 else 0

    @property
    def usable(self) -> bool:
        return bool(self.name_columns and self.price_columns)


def price_kind_for_header(label: str) -> Optional[PriceKind]:
    for keywords, kind in HEADER_PRICE_KINDS:
        if any(keyword in label for keyword in keywords):
            return kind
    return None


def should_skip_sheet(sheet_name: str, skip_sheets: Sequence[str]) -> bool:
    lowered = sheet_name.lower()
    return any(skip.lower() in lowered for skip in skip_sheets if skip)


def _roles_from_mapping(headers: list[str], mapping: ColumnMapping, sheet: str) -> ColumnRoles:
    roles = ColumnRoles(source="template")
    for index, label in enumerate(headers):
        if not label:
            continue
        if label in mapping.price_headers:
            roles.price_columns.append(
                PriceColumn(price_kind=mapping.price_headers[label], label=label, sheet=sheet, column_index=index)
            )
        elif label in mapping.name_headers:
            roles.name_columns.append(index)
        if label in mapping.description_headers:
            roles.description_columns.append(index)
    return roles


def _roles_from_keywords(headers: list[str], sheet: str) -> ColumnRoles:
    roles = ColumnRoles(source="headers")
    for index, label in enumerate(headers):
        if not label:
            continue
        kind = price_kind_for_header(label)
        if kind is not None:
            roles.price_columns.append(
                PriceColumn(price_kind=kind, label=label, sheet=sheet, column_index=index)
            )
        elif any(keyword in label for keyword in NAME_HEADERS):
            roles.name_columns.append(index)
        if any(keyword in label for keyword in DESCRIPTION_HEADERS) and index not in roles.name_columns[:1]:
            roles.description_columns.append(index)
    return roles


def _positional_roles(rows: list[list[Any]], start: int, sheet: str) -> ColumnRoles:
    """Guess the name and price columns from cell contents of the first data rows."""
    roles = ColumnRoles(source="positional")
    sample = [row for row in rows[start:start + POSITIONAL_SAMPLE_ROWS] if row]
    if not sample:
        return roles

    column_count = max(len(row) for row in sample)
    for column in range(column_count):
        text_count = numeric_count = price_count = 0
        for row in sample:
            if column >= len(row) or is_empty(row[column]):
                continue
            value = as_number(row[column])
            if value is None:
                text_count += 1
                text = cell_text(row[column])
                if len(text) > 10 and any(char.isalpha() for char in text):
                    text_count += 2
            else:
                numeric_count += 1
                if in_price_range(value):
                    price_count += 1

        if text_count > numeric_count and not roles.name_columns:
            roles.name_columns.append(column)
        elif price_count > 0 and not roles.price_columns:
            roles.price_columns.append(
                PriceColumn(
                    price_kind=PriceKind.GENERIC_PRICE,
                    label=f"column {column}",
                    sheet=sheet,
                    column_index=column,
                )
            )
    return roles


def resolve_column_roles(rows: list[list[Any]], sheet: str, mapping: ColumnMapping) -> ColumnRoles:
    """
    Resolve name, description and price columns for a sheet.

    Learned template labels are tried first, then header keywords, and
    positional inference fills whichever role is still missing.
    """
    headers = detect_headers(rows)
    header_row = headers.row if headers.detected else -1

    roles = ColumnRoles()
    if header_row >= 0:
        labels = [cell_text(cell).lower() for cell in rows[header_row]]
        if mapping.price_headers or mapping.name_headers:
            roles = _roles_from_mapping(labels, mapping, sheet)
        if not roles.usable:
            keyword_roles = _roles_from_keywords(labels, sheet)
            roles = ColumnRoles(
                name_columns=roles.name_columns or keyword_roles.name_columns,
                description_columns=roles.description_columns or keyword_roles.description_columns,
                price_columns=roles.price_columns or keyword_roles.price_columns,
                source=roles.source if roles.usable else keyword_roles.source,
            )
    roles.header_row = header_row

    if not roles.usable:
        positional = _positional_roles(rows, roles.data_start_row, sheet)
        if not roles.name_columns:
            roles.name_columns = positional.name_columns
        if not roles.price_columns:
            roles.price_columns = [
                column for column in positional.price_columns if column.column_index not in roles.name_columns
            ]
        if roles.source == "none":
            roles.source = "positional"

    return roles


class SpreadsheetExtractor:
    """Extracts one product per data row of every relevant sheet"""

    method = "spreadsheet"

    def __init__(self, settings: Optional[ExtractionSettings] = None) -> None:
        self.settings = settings or ExtractionSettings()
        self.logger = logger.bind(component="spreadsheet_extractor")

    def extract(
        self, sheets: dict[str, list[list[Any]]], config: TemplateConfig
    ) -> tuple[StrategyOutcome, list[PriceColumn]]:
        outcome = StrategyOutcome()
        price_columns: list[PriceColumn] = []

        for sheet_name, rows in sheets.items():
            if should_skip_sheet(sheet_name, config.skip_sheets):
                self.logger.debug("Skipping sheet", sheet=sheet_name)
                continue
            if len(rows) < 2:
                continue

            roles = resolve_column_roles(rows, sheet_name, config.column_mapping)
            if not roles.usable:
                self.logger.info("No usable columns in sheet", sheet=sheet_name)
                continue

            price_columns.extend(roles.price_columns)
            ordered = self._order_columns(roles.price_columns, config.column_priorities)
            self.logger.debug(
                "Resolved sheet columns",
                sheet=sheet_name,
                source=roles.source,
                name_columns=roles.name_columns,
                price_columns=[column.label for column in ordered],
            )

            for row_index in range(roles.data_start_row, len(rows)):
                row = rows[row_index]
                if not row:
                    continue
                outcome.loci_scanned += 1
                try:
                    product = self.extract_row(row, row_index, sheet_name, roles, ordered, config)
                except Exception as e:
                    outcome.errors += 1
                    self.logger.warning(
                        "Skipping malformed row",
                        sheet=sheet_name,
                        row=row_index,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue

                if product is None:
                    outcome.loci_skipped += 1
                else:
                    outcome.products.append(product)

        return outcome, price_columns

    def extract_row(
        self,
        row: list[Any],
        row_index: int,
        sheet_name: str,
        roles: ColumnRoles,
        price_columns: Sequence[PriceColumn],
        config: TemplateConfig,
    ) -> Optional[ProductCandidate]:
        name = self._first_value(row, roles.name_columns)
        if not is_usable_name(name, self.settings.min_name_length):
            return None

        candidates = []
        for column in price_columns:
            candidate = self._cell_candidate(row, column)
            if candidate is not None:
                candidates.append(candidate)

        selected = select_best_price(candidates)
        if selected is None:
            return None

        description = self._first_value(row, [c for c in roles.description_columns if c not in roles.name_columns[:1]])
        return build_product(
            name=name,
            selected=selected,
            candidates=candidates,
            method=self.method,
            location=SourceLocation(sheet=sheet_name, row=row_index),
            review_threshold=config.confidence_threshold,
            description=description or name,
            specs=extract_specifications(" ".join(cell_text(cell) for cell in row)),
        )

    def _cell_candidate(self, row: list[Any], column: PriceColumn) -> Optional[PriceCandidate]:
        index = column.column_index
        if index is None or index >= len(row) or is_empty(row[index]):
            return None

        value = parse_price(row[index])
        if value is None or value <= 0 or value > self.settings.max_valid_price:
            return None

        raw_text = cell_text(row[index])
        symbol = CURRENCY_PREFIX.match(raw_text)
        return PriceCandidate(
            raw_text=raw_text,
            numeric_value=value,
            currency=currency_code(symbol.group(1) if symbol else None, self.settings.default_currency),
            price_kind=column.price_kind,
            position=index,
            confidence=CELL_PRICE_CONFIDENCE,
        )

    @staticmethod
    def _first_value(row: list[Any], columns: Sequence[int]) -> Optional[str]:
        for index in columns:
            if index < len(row) and not is_empty(row[index]):
                return cell_text(row[index])
        return None

    @staticmethod
    def _order_columns(columns: Sequence[PriceColumn], priorities: Sequence[PriceKind]) -> list[PriceColumn]:
        rank = {kind: position for position, kind in enumerate(priorities)}
        return sorted(columns, key=lambda column: rank.get(column.price_kind, len(rank)))
