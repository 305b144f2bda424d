"""
Core domain models for the supplier pricelist engine.

All business data structures use Pydantic for validation and serialization.
Descriptors, price candidates, products, templates and supplier profiles are
immutable values: every change goes through ``model_copy(update=..., deep=True)``
so derived templates never share nested state with their ancestors.
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

GENERIC_SUPPLIER = "generic"


def utc_now() -> datetime:
    """Timezone-aware current time"""
    return datetime.now(timezone.utc)


class DocumentKind(str, Enum):
    """Kinds of decoded documents the engine understands"""

    PDF = "pdf"
    SPREADSHEET = "spreadsheet"
    GENERIC = "generic"  # templates only
    UNKNOWN = "unknown"


class LayoutType(str, Enum):
    """Structural shape of a document"""

    TABLE = "table"
    MULTI_COLUMN = "multi-column"
    CATALOG = "catalog"
    LIST = "list"
    DOCUMENT = "document"
    SINGLE_SHEET = "single-sheet"
    MULTI_SHEET = "multi-sheet"
    UNKNOWN = "unknown"
    GENERIC = "generic"  # templates only


class PriceKind(str, Enum):
    """Price semantics, declared from most to least preferred"""

    NEW_RRP = "New RRP"
    CURRENT_PRICE = "Current Price"
    RRP = "RRP"
    RETAIL_PRICE = "Retail Price"
    OLD_RRP = "Old RRP"
    COST_PRICE = "Cost Price"
    GENERIC_PRICE = "Price"

    @property
    def priority(self) -> int:
        return PRICE_KIND_PRIORITY[self]


PRICE_KIND_PRIORITY: dict[PriceKind, int] = {
    PriceKind.NEW_RRP: 100,
    PriceKind.CURRENT_PRICE: 90,
    PriceKind.RRP: 80,
    PriceKind.RETAIL_PRICE: 70,
    PriceKind.OLD_RRP: 50,
    PriceKind.COST_PRICE: 40,
    PriceKind.GENERIC_PRICE: 20,
}


class ExtractionStrategy(str, Enum):
    """How permissive extraction thresholds are"""

    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


class PricePolicy(str, Enum):
    """How conflicting prices at one locus are resolved for a supplier"""

    PRIORITY_TABLE = "priority_table"
    TWO_PRICE = "two_price"


class CurrentPricePosition(str, Enum):
    """Which of two unlabelled prices is the current one"""

    LAST = "last"
    FIRST = "first"


# ============================================================================
# Decoded Content (input from the content collaborator)
# ============================================================================


class PdfContent(BaseModel):
    """PDF text as ordered lines"""

    kind: Literal["pdf"] = "pdf"
    lines: list[str] = Field(default_factory=list, description="Ordered text lines")
    page_count: int = Field(default=1, ge=0, description="Number of pages")

    @property
    def non_blank_lines(self) -> list[str]:
        return [line for line in self.lines if line.strip()]


class SpreadsheetContent(BaseModel):
    """Workbook as sheet name to 2D cell grid"""

    kind: Literal["spreadsheet"] = "spreadsheet"
    sheets: dict[str, list[list[Any]]] = Field(
        default_factory=dict, description="Sheet name to rows of cells"
    )


DocumentContent = Annotated[
    Union[PdfContent, SpreadsheetContent], Field(discriminator="kind")
]


# ============================================================================
# Layout Classification Models
# ============================================================================


class PricePatternSummary(BaseModel):
    """Price vocabulary observed in a PDF"""

    r_format: int = 0
    dollar_format: int = 0
    euro_format: int = 0
    plain_decimal: int = 0
    new_rrp: int = 0
    old_rrp: int = 0
    cost: int = 0
    retail: int = 0
    primary_format: Optional[str] = Field(None, description="Dominant currency format")
    total_price_references: int = 0
    price_density: float = Field(default=0.0, ge=0.0, description="References per line")

    @property
    def has_new_rrp(self) -> bool:
        return self.new_rrp > 0

    @property
    def has_old_rrp(self) -> bool:
        return self.old_rrp > 0


class ColumnStructure(BaseModel):
    """Shape of the primary sheet of a workbook"""

    sheet_count: int = Field(default=0, ge=0)
    column_count: int = Field(default=0, ge=0)
    price_column_count: int = Field(default=0, ge=0)
    has_headers: bool = False
    data_quality: float = Field(default=0.0, ge=0.0, le=1.0)


class LayoutDescriptor(BaseModel):
    """Classification output for one document"""

    model_config = ConfigDict(frozen=True)

    document_kind: DocumentKind = Field(..., description="Decoded document kind")
    layout_type: LayoutType = Field(..., description="Structural layout type")
    subtype: str = Field(default="unknown", description="Layout refinement")
    confidence: float = Field(..., ge=0.0, le=1.0)
    characteristics: dict[str, Any] = Field(
        default_factory=dict, description="Signal metrics bag"
    )
    price_patterns: Optional[PricePatternSummary] = None
    column_structure: Optional[ColumnStructure] = None
    processing_hints: dict[str, Any] = Field(default_factory=dict)
    ai_enhanced: bool = False
    error: Optional[str] = None

    @property
    def is_spreadsheet(self) -> bool:
        return self.document_kind == DocumentKind.SPREADSHEET


# ============================================================================
# Price Extraction Models
# ============================================================================


class SourceLocation(BaseModel):
    """Where in the document a product came from"""

    line: Optional[int] = Field(None, ge=0, description="First line index (PDF)")
    end_line: Optional[int] = Field(None, ge=0, description="Last line index (PDF)")
    block: Optional[int] = Field(None, ge=0, description="Catalog block index")
    sheet: Optional[str] = None
    row: Optional[int] = Field(None, ge=0)


class PriceCandidate(BaseModel):
    """One price occurrence at a locus"""

    model_config = ConfigDict(frozen=True)

    raw_text: str = Field(..., description="Matched text")
    numeric_value: Decimal = Field(..., ge=0, description="Parsed value")
    currency: str = Field(default="ZAR", description="ISO currency code")
    price_kind: PriceKind = Field(..., description="Price semantics")
    position: int = Field(default=0, ge=0, description="Offset or column index")
    confidence: float = Field(..., ge=0.0, le=1.0)

    @property
    def priority(self) -> int:
        return self.price_kind.priority


class ProductCandidate(BaseModel):
    """One product with its resolved price"""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    selected_price: PriceCandidate = Field(..., description="The resolved current price")
    all_price_candidates: list[PriceCandidate] = Field(..., min_length=1)
    description: Optional[str] = None
    specs: list[str] = Field(default_factory=list)
    source_location: SourceLocation = Field(default_factory=SourceLocation)
    extraction_method: str = Field(..., description="Strategy that produced this product")
    confidence: float = Field(..., ge=0.0, le=1.0)
    needs_review: bool = False

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v):
        """Collapse internal whitespace"""
        return " ".join(v.split())

    @property
    def price(self) -> Decimal:
        return self.selected_price.numeric_value

    @property
    def price_kind(self) -> PriceKind:
        return self.selected_price.price_kind

    @property
    def old_rrp(self) -> Optional[Decimal]:
        for candidate in self.all_price_candidates:
            if candidate.price_kind == PriceKind.OLD_RRP:
                return candidate.numeric_value
        return None


class PriceColumn(BaseModel):
    """A price source recognised during extraction"""

    price_kind: PriceKind
    label: str
    sheet: Optional[str] = None
    column_index: Optional[int] = None


class ExtractionStatistics(BaseModel):
    """Per-run extraction counters"""

    total_products: int = 0
    loci_scanned: int = 0
    loci_skipped: int = 0
    errors: int = 0
    new_rrp_detected: int = 0
    old_rrp_detected: int = 0
    price_kind_distribution: dict[str, int] = Field(default_factory=dict)


class ExtractionResult(BaseModel):
    """Output of one extraction run"""

    products: list[ProductCandidate] = Field(default_factory=list)
    price_columns_found: list[PriceColumn] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=100.0, description="Run confidence 0-100")
    extraction_method: str = Field(..., description="Strategy used for the document")
    statistics: ExtractionStatistics = Field(default_factory=ExtractionStatistics)


# ============================================================================
# Template Models
# ============================================================================


class ColumnMapping(BaseModel):
    """Learned header labels for spreadsheet column roles"""

    name_headers: list[str] = Field(default_factory=list)
    description_headers: list[str] = Field(default_factory=list)
    price_headers: dict[str, PriceKind] = Field(
        default_factory=dict, description="Lower-cased header label to price kind"
    )

    @field_validator("name_headers", "description_headers")
    @classmethod
    def lower_labels(cls, v):
        return [label.strip().lower() for label in v]

    @field_validator("price_headers")
    @classmethod
    def lower_price_labels(cls, v):
        return {label.strip().lower(): kind for label, kind in v.items()}


class TemplateConfig(BaseModel):
    """Extraction configuration carried by a template"""

    model_config = ConfigDict(frozen=True)

    strategy: ExtractionStrategy = ExtractionStrategy.BALANCED
    price_policy: PricePolicy = PricePolicy.PRIORITY_TABLE
    current_price_position: CurrentPricePosition = CurrentPricePosition.LAST
    column_priorities: list[PriceKind] = Field(
        default_factory=lambda: list(PRICE_KIND_PRIORITY)
    )
    column_mapping: ColumnMapping = Field(default_factory=ColumnMapping)
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_processing_time_ms: float = Field(default=30000.0, gt=0)
    skip_sheets: list[str] = Field(default_factory=list)
    skip_sections: list[str] = Field(default_factory=list)
    block_separator: Optional[str] = None
    processing_hints: dict[str, Any] = Field(default_factory=dict)
    price_profile: Optional[PricePatternSummary] = None
    column_structure: Optional[ColumnStructure] = None


class TemplatePerformance(BaseModel):
    """Rolling performance of a template"""

    model_config = ConfigDict(frozen=True)

    usage_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    average_score: float = Field(default=0.5, ge=0.0, le=1.0)
    average_processing_time_ms: float = Field(default=0.0, ge=0.0)
    average_product_count: float = Field(default=0.0, ge=0.0)
    recent_confidences: list[float] = Field(default_factory=list)
    last_used: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        if self.usage_count == 0:
            return 0.0
        return self.success_count / self.usage_count


class LearningEntry(BaseModel):
    """One adaptation applied to a template"""

    timestamp: datetime = Field(default_factory=utc_now)
    version: str
    overall_score: float = Field(..., ge=0.0, le=1.0)
    issues: list[str] = Field(default_factory=list)
    adaptations: list[str] = Field(default_factory=list)


class Template(BaseModel):
    """Persisted, versioned extraction configuration for a (supplier, layout) pair"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., description="Human readable template name")
    supplier_key: str = Field(..., description="Supplier key or 'generic'")
    document_kind: DocumentKind
    layout_type: LayoutType
    subtype: str = "generic"
    version: str = Field(default="1.0.0", description="Semantic version, bumped on adaptation")
    revision: int = Field(default=0, ge=0, description="Storage compare-and-swap counter")
    base_template_id: Optional[str] = Field(None, description="Lineage pointer for adaptive clones")
    is_adaptive: bool = False
    config: TemplateConfig = Field(default_factory=TemplateConfig)
    performance: TemplatePerformance = Field(default_factory=TemplatePerformance)
    learning_history: list[LearningEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v):
        """Require major.minor.patch"""
        parts = v.split(".")
        if len(parts) != 3 or not all(part.isdigit() for part in parts):
            raise ValueError("Template version must be major.minor.patch")
        return v

    @property
    def is_generic(self) -> bool:
        return self.supplier_key == GENERIC_SUPPLIER

    @property
    def version_info(self) -> tuple[int, int, int]:
        major, minor, patch = (int(part) for part in self.version.split("."))
        return major, minor, patch

    def next_patch_version(self) -> str:
        major, minor, patch = self.version_info
        return f"{major}.{minor}.{patch + 1}"


# ============================================================================
# Supplier Profile Models
# ============================================================================


class ProcessingHistory(BaseModel):
    total_files: int = Field(default=0, ge=0)
    successful_files: int = Field(default=0, ge=0)
    total_products: int = Field(default=0, ge=0)
    average_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    average_processing_time_ms: float = Field(default=0.0, ge=0.0)
    last_processed: Optional[datetime] = None


class PatternHistograms(BaseModel):
    file_formats: dict[str, int] = Field(default_factory=dict)
    layout_types: dict[str, int] = Field(default_factory=dict)
    price_formats: dict[str, int] = Field(default_factory=dict)


class QualityMetrics(BaseModel):
    consistency: float = Field(default=0.5, ge=0.0, le=1.0)
    reliability: float = Field(default=0.5, ge=0.0, le=1.0)
    adaptability: float = Field(default=0.5, ge=0.0, le=1.0)


class LearningPreferences(BaseModel):
    preferred_strategy: Optional[ExtractionStrategy] = None
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    adaptation_rate: float = Field(default=0.1, gt=0.0, le=1.0)


class SupplierProfile(BaseModel):
    """Learned processing profile of one supplier"""

    model_config = ConfigDict(frozen=True)

    supplier_key: str = Field(..., min_length=1)
    revision: int = Field(default=0, ge=0)
    processing_history: ProcessingHistory = Field(default_factory=ProcessingHistory)
    template_success_rates: dict[str, float] = Field(default_factory=dict)
    common_patterns: PatternHistograms = Field(default_factory=PatternHistograms)
    quality_metrics: QualityMetrics = Field(default_factory=QualityMetrics)
    learning_preferences: LearningPreferences = Field(default_factory=LearningPreferences)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# Learning Feedback Models
# ============================================================================


class OutcomeMetrics(BaseModel):
    """Post-hoc outcome of one extraction run"""

    template_id: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    extracted_count: int = Field(..., ge=0)
    processing_time_ms: float = Field(default=0.0, ge=0.0)
    template_was_adapted: bool = False
    price_format: Optional[str] = None


class SuccessMetrics(BaseModel):
    confidence_score: float
    count_score: float
    time_score: float
    overall_score: float
    is_successful: bool


class TemplateScore(BaseModel):
    """Breakdown of a template match score"""

    template_id: str
    layout_match: float
    price_vocabulary: float
    column_structure: float
    file_format: float
    history: float
    performance_bonus: float
    total: float = Field(..., ge=0.0, le=1.1, description="Clamped weighted sum plus performance bonus")


__all__ = [
    "GENERIC_SUPPLIER",
    "PRICE_KIND_PRIORITY",
    "ColumnMapping",
    "ColumnStructure",
    "CurrentPricePosition",
    "DocumentContent",
    "DocumentKind",
    "ExtractionResult",
    "ExtractionStatistics",
    "ExtractionStrategy",
    "LayoutDescriptor",
    "LayoutType",
    "LearningEntry",
    "LearningPreferences",
    "OutcomeMetrics",
    "PatternHistograms",
    "PdfContent",
    "PriceCandidate",
    "PriceColumn",
    "PriceKind",
    "PricePatternSummary",
    "PricePolicy",
    "ProcessingHistory",
    "ProductCandidate",
    "QualityMetrics",
    "SourceLocation",
    "SpreadsheetContent",
    "SuccessMetrics",
    "SupplierProfile",
    "Template",
    "TemplateConfig",
    "TemplatePerformance",
    "TemplateScore",
    "utc_now",
]
