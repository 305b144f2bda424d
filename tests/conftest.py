"""
Global pytest configuration and fixtures for the pricelist engine tests.

Provides shared settings, decoded sample documents and template stores.
"""
from datetime import datetime, timezone

import pytest

from pricelist_engine.config.settings import (
    ClassifierSettings,
    ExtractionSettings,
    TemplateSettings,
)
from pricelist_engine.models.domain import (
    ColumnStructure,
    DocumentKind,
    LayoutDescriptor,
    LayoutType,
    PdfContent,
    PricePatternSummary,
    SpreadsheetContent,
)
from pricelist_engine.repositories.store import InMemoryTemplateStore

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# SETTINGS FIXTURES
# ============================================================================


@pytest.fixture
def extraction_settings():
    """Extraction settings with library defaults"""
    return ExtractionSettings()


@pytest.fixture
def classifier_settings():
    """Classifier settings with AI enhancement disabled"""
    return ClassifierSettings(enable_ai_enhancement=False)


@pytest.fixture
def template_settings():
    """Template settings with library defaults"""
    return TemplateSettings()


@pytest.fixture
def fixed_clock():
    """Clock returning a constant timestamp"""
    return lambda: FIXED_NOW


# ============================================================================
# SAMPLE CONTENT FIXTURES
# ============================================================================


@pytest.fixture
def table_pdf_content():
    """Two-price table pricelist as decoded PDF lines"""
    return PdfContent(
        lines=[
            "AVR-X1700H    7.2 Channel Receiver    R9,990.00    R8,990.00",
            "AVR-X2800H    7.2 Channel Receiver    R14,990.00    R13,490.00",
            "AVR-X3800H    9.4 Channel Receiver    R24,990.00    R22,490.00",
            "PMA-600NE     Integrated Amplifier    R8,490.00    R7,990.00",
            "PMA-900HNE    Integrated Amplifier    R15,990.00    R14,490.00",
            "DCD-900NE     CD Player               R9,490.00    R8,990.00",
        ],
        page_count=1,
    )


@pytest.fixture
def labelled_pdf_content():
    """Single-price pricelist with labelled prices"""
    return PdfContent(
        lines=[
            "Bookshelf Speaker BS100 RRP: R2,499.00",
            "Floorstanding Speaker FS300 RRP: R8,999.00",
            "Terms and conditions apply",
        ],
    )


@pytest.fixture
def catalog_pdf_content():
    """Catalog blocks whose price lines start with the price label"""
    return PdfContent(
        lines=[
            "Denon Bookshelf Speaker BS100",
            "Compact two way speaker with silk dome tweeter",
            "RRP R1,499.00",
            "----",
            "Denon Centre Speaker CS200",
            "Centre channel speaker matched to the bookshelf range",
            "Price: R3,299.00",
            "----",
            "Denon Floorstanding Speaker FS300",
            "Tower speaker with dual woofers and a bass port",
            "Our Price R8,999.00",
            "----",
        ],
    )


@pytest.fixture
def spreadsheet_content():
    """Single sheet with old and new RRP columns"""
    return SpreadsheetContent(
        sheets={
            "Prices": [
                ["Product", "Old RRP", "New RRP"],
                ["SA-150", 1000, 1250],
                ["SA-250 Stereo Amplifier", 2000, 2350],
            ]
        }
    )


# ============================================================================
# DESCRIPTOR FIXTURES
# ============================================================================


@pytest.fixture
def pdf_descriptor():
    """Confident table descriptor for a PDF"""
    return LayoutDescriptor(
        document_kind=DocumentKind.PDF,
        layout_type=LayoutType.TABLE,
        subtype="structured_table",
        confidence=0.9,
        price_patterns=PricePatternSummary(
            r_format=12, primary_format="r_format", total_price_references=12, price_density=2.0
        ),
        processing_hints={"strategy": "tabular"},
    )


@pytest.fixture
def spreadsheet_descriptor():
    """Single-sheet descriptor with two price columns"""
    return LayoutDescriptor(
        document_kind=DocumentKind.SPREADSHEET,
        layout_type=LayoutType.SINGLE_SHEET,
        subtype="multi_price_columns",
        confidence=0.85,
        column_structure=ColumnStructure(
            sheet_count=1, column_count=3, price_column_count=2, has_headers=True, data_quality=1.0
        ),
        processing_hints={"strategy": "excel_structured"},
    )


# ============================================================================
# STORE FIXTURES
# ============================================================================


@pytest.fixture
def memory_store():
    """Empty in-memory template store"""
    return InMemoryTemplateStore()
