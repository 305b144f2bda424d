"""
In-process repository of recognised layout patterns.

Each classifier receives its own instance, so two pipelines never share
pattern state by accident. Durable state lives only in the template store.
"""
from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from pricelist_engine.models.domain import LayoutDescriptor, utc_now

logger = structlog.get_logger(__name__)


class LayoutPattern(BaseModel):
    signature: str
    layout_type: str
    subtype: str
    best_confidence: float = Field(..., ge=0.0, le=1.0)
    hits: int = Field(default=1, ge=1)
    first_seen: datetime = Field(default_factory=utc_now)
    last_seen: datetime = Field(default_factory=utc_now)


class LayoutPatternRepository:
    """Bounded map of layout signature to observed pattern"""

    def __init__(self, max_patterns: int = 1000) -> None:
        self.max_patterns = max_patterns
        self._patterns: dict[str, LayoutPattern] = {}
        self.logger = logger.bind(component="layout_patterns")

    @staticmethod
    def signature(descriptor: LayoutDescriptor) -> str:
        parts = [
            descriptor.document_kind.value,
            descriptor.layout_type.value,
            descriptor.subtype,
        ]
        if descriptor.price_patterns is not None:
            parts.append(descriptor.price_patterns.primary_format or "none")
        if descriptor.column_structure is not None:
            parts.append(f"sheets={descriptor.column_structure.sheet_count}")
            parts.append(f"cols={descriptor.column_structure.column_count}")
        return ":".join(parts)

    def record(self, descriptor: LayoutDescriptor) -> LayoutPattern:
        key = self.signature(descriptor)
        existing = self._patterns.get(key)

        if existing is None:
            if len(self._patterns) >= self.max_patterns:
                oldest = min(self._patterns.values(), key=lambda pattern: pattern.last_seen)
                del self._patterns[oldest.signature]
            pattern = LayoutPattern(
                signature=key,
                layout_type=descriptor.layout_type.value,
                subtype=descriptor.subtype,
                best_confidence=descriptor.confidence,
            )
        else:
            pattern = existing.model_copy(
                update={
                    "hits": existing.hits + 1,
                    "best_confidence": max(existing.best_confidence, descriptor.confidence),
                    "last_seen": utc_now(),
                }
            )

        self._patterns[key] = pattern
        self.logger.debug("Layout pattern recorded", signature=key, hits=pattern.hits)
        return pattern

    def get_statistics(self) -> dict:
        by_type: dict[str, int] = {}
        for pattern in self._patterns.values():
            by_type[pattern.layout_type] = by_type.get(pattern.layout_type, 0) + pattern.hits
        return {
            "patterns": len(self._patterns),
            "total_hits": sum(pattern.hits for pattern in self._patterns.values()),
            "hits_by_layout_type": by_type,
        }

    def __len__(self) -> int:
        return len(self._patterns)
