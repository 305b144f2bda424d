"""
Contract for optional layout confidence enhancers.
"""
from abc import ABC, abstractmethod

from pricelist_engine.models.domain import DocumentContent, LayoutDescriptor


class LayoutEnhancer(ABC):
    """External text-analysis collaborator that may confirm a low-confidence layout"""

    @abstractmethod
    async def enhance(
        self, descriptor: LayoutDescriptor, content: DocumentContent
    ) -> LayoutDescriptor:
        """Return a reviewed descriptor. Implementations may raise on failure."""


def apply_boost(descriptor: LayoutDescriptor, boost: float) -> LayoutDescriptor:
    """Copy of the descriptor with a fixed confidence boost and the enhanced tag."""
    return descriptor.model_copy(
        update={
            "confidence": min(1.0, round(descriptor.confidence + boost, 4)),
            "ai_enhanced": True,
        }
    )
