"""
Document pipeline controller.

Runs one decoded pricelist through classification, template matching,
extraction, delivery and template learning.
"""
import time
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

import structlog
from pydantic import BaseModel, Field

from pricelist_engine.extraction.extractor import PriceExtractor
from pricelist_engine.layout.classifier import LayoutClassifier
from pricelist_engine.models.domain import (
    ExtractionResult,
    LayoutDescriptor,
    OutcomeMetrics,
    PdfContent,
    ProductCandidate,
    SpreadsheetContent,
)
from pricelist_engine.templates.matcher import TemplateMatcher

logger = structlog.get_logger(__name__)


class PipelineResult(BaseModel):
    """Outcome of processing one document"""

    supplier_key: str
    descriptor: LayoutDescriptor
    template_id: str
    template_version: str
    extraction: ExtractionResult
    processing_time_ms: float = Field(..., ge=0.0)
    learning_error: Optional[str] = None

    @property
    def products(self) -> list[ProductCandidate]:
        return self.extraction.products


class ResultSink(ABC):
    """Downstream validation and persistence collaborator"""

    @abstractmethod
    async def deliver(
        self, supplier_key: str, products: list[ProductCandidate], metadata: dict[str, Any]
    ) -> None:
        ...


class CollectingResultSink(ResultSink):
    """Keeps every delivery in memory"""

    def __init__(self) -> None:
        self.deliveries: list[tuple[str, list[ProductCandidate], dict[str, Any]]] = []

    async def deliver(
        self, supplier_key: str, products: list[ProductCandidate], metadata: dict[str, Any]
    ) -> None:
        self.deliveries.append((supplier_key, list(products), dict(metadata)))


class DocumentPipeline:
    """
    Pipeline Steps:
    1. Analyze - classify the layout, optionally AI-enhanced
    2. Match - find or create the template for the supplier and layout
    3. Extract - products and prices under the template configuration
    4. Deliver - hand products to the result sink
    5. Learn - fold the outcome back into the template and supplier profile
    """

    def __init__(
        self,
        classifier: LayoutClassifier,
        extractor: PriceExtractor,
        matcher: TemplateMatcher,
        sink: Optional[ResultSink] = None,
    ) -> None:
        self.classifier = classifier
        self.extractor = extractor
        self.matcher = matcher
        self.sink = sink
        self.logger = logger.bind(component="document_pipeline")

    async def process(
        self,
        supplier_key: str,
        content: Union[PdfContent, SpreadsheetContent, dict[str, Any]],
    ) -> PipelineResult:
        """
        Process one decoded document.

        Raises:
            UnsupportedFormatError: If the content is neither PDF nor spreadsheet
        """
        start_time = time.time()
        run_logger = self.logger.bind(supplier_key=supplier_key)

        descriptor = await self.classifier.analyze(content)
        template = await self.matcher.find_best_template(supplier_key, descriptor)
        run_logger.info(
            "Template selected",
            layout_type=descriptor.layout_type.value,
            layout_confidence=descriptor.confidence,
            template_id=template.id,
            template_version=template.version,
        )

        extraction = self.extractor.extract(content, descriptor, template)

        if self.sink is not None:
            await self.sink.deliver(
                supplier_key,
                extraction.products,
                {
                    "confidence": extraction.confidence,
                    "price_columns_found": [
                        column.model_dump(mode="json") for column in extraction.price_columns_found
                    ],
                    "extraction_method": extraction.extraction_method,
                },
            )

        processing_time_ms = (time.time() - start_time) * 1000
        outcome = OutcomeMetrics(
            template_id=template.id,
            confidence=extraction.confidence / 100,
            extracted_count=len(extraction.products),
            processing_time_ms=processing_time_ms,
            template_was_adapted=template.is_adaptive,
            price_format=descriptor.price_patterns.primary_format if descriptor.price_patterns else None,
        )

        learning_error = None
        try:
            await self.matcher.update_template(supplier_key, descriptor, outcome)
        except Exception as e:
            learning_error = str(e)
            run_logger.error("Template learning failed", template_id=template.id, error=str(e))

        run_logger.info(
            "Document processed",
            products=len(extraction.products),
            confidence=extraction.confidence,
            method=extraction.extraction_method,
            processing_time_ms=round(processing_time_ms, 2),
        )

        return PipelineResult(
            supplier_key=supplier_key,
            descriptor=descriptor,
            template_id=template.id,
            template_version=template.version,
            extraction=extraction,
            processing_time_ms=processing_time_ms,
            learning_error=learning_error,
        )
