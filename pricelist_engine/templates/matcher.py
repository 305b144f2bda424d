"""
Template matching and adaptive learning.

The matcher picks the best stored template for a (supplier, layout) pair,
synthesizes one when the store has nothing suitable, and clones a close
candidate into an adaptive template when no candidate is good enough.
Stored templates are never mutated in place: every change is a new frozen
value written back through a compare-and-swap on its revision.
"""
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from pricelist_engine.config.settings import TemplateSettings
from pricelist_engine.core.exceptions import TemplateConflictError
from pricelist_engine.models.domain import (
    GENERIC_SUPPLIER,
    DocumentKind,
    ExtractionStrategy,
    LayoutDescriptor,
    LayoutType,
    LearningEntry,
    OutcomeMetrics,
    PriceKind,
    SuccessMetrics,
    SupplierProfile,
    Template,
    TemplateConfig,
    TemplatePerformance,
    TemplateScore,
    utc_now,
)
from pricelist_engine.repositories.store import TemplateStore
from pricelist_engine.templates.learning import (
    adapt_template,
    calculate_success_metrics,
    update_performance,
    update_profile,
)
from pricelist_engine.templates.presets import (
    DEFAULT_SKIP_SECTIONS,
    complete_priorities,
    normalize_supplier_key,
    preset_for,
    resolve_preset,
)
from pricelist_engine.templates.scoring import calculate_template_score

logger = structlog.get_logger(__name__)

GENERIC_PDF_TEMPLATE_ID = "generic-pdf"
GENERIC_SPREADSHEET_TEMPLATE_ID = "generic-spreadsheet"

DEFAULT_THRESHOLD = 0.7
CONSISTENT_SUPPLIER_THRESHOLD = 0.8
GENERIC_THRESHOLD = 0.6
ADAPTIVE_BASE_SCORE = 0.6
THRESHOLD_DRIFT = 0.2


def processing_strategy_for_confidence(confidence: float) -> ExtractionStrategy:
    if confidence > 0.8:
        return ExtractionStrategy.CONSERVATIVE
    if confidence > 0.5:
        return ExtractionStrategy.BALANCED
    return ExtractionStrategy.AGGRESSIVE


def _generic_template(template_id: str, document_kind: DocumentKind) -> Template:
    return Template(
        id=template_id,
        name=f"Generic {document_kind.value} template",
        supplier_key=GENERIC_SUPPLIER,
        document_kind=document_kind,
        layout_type=LayoutType.GENERIC,
        subtype="generic",
        config=TemplateConfig(
            strategy=ExtractionStrategy.CONSERVATIVE,
            column_priorities=complete_priorities(
                [PriceKind.NEW_RRP, PriceKind.RRP, PriceKind.GENERIC_PRICE]
            ),
            confidence_threshold=GENERIC_THRESHOLD,
            skip_sections=list(DEFAULT_SKIP_SECTIONS),
        ),
    )


def default_templates() -> list[Template]:
    """The seed templates every store should hold"""
    return [
        _generic_template(GENERIC_PDF_TEMPLATE_ID, DocumentKind.PDF),
        _generic_template(GENERIC_SPREADSHEET_TEMPLATE_ID, DocumentKind.SPREADSHEET),
    ]


def fallback_template(descriptor: LayoutDescriptor) -> Template:
    """Transient generic template for when the store cannot be reached"""
    if descriptor.is_spreadsheet:
        return _generic_template(GENERIC_SPREADSHEET_TEMPLATE_ID, DocumentKind.SPREADSHEET)
    return _generic_template(GENERIC_PDF_TEMPLATE_ID, DocumentKind.PDF)


def merge_configurations(
    base: TemplateConfig,
    descriptor: LayoutDescriptor,
    profile: Optional[SupplierProfile],
) -> TemplateConfig:
    """Base config deep copy, overlaid with the descriptor profile and supplier preferences."""
    updates: dict[str, Any] = {
        "processing_hints": {**base.processing_hints, **descriptor.processing_hints},
    }
    if profile is not None:
        updates["confidence_threshold"] = profile.learning_preferences.confidence_threshold
        if profile.learning_preferences.preferred_strategy is not None:
            updates["strategy"] = profile.learning_preferences.preferred_strategy
    if descriptor.price_patterns is not None:
        updates["price_profile"] = descriptor.price_patterns.model_copy()
    if descriptor.column_structure is not None:
        updates["column_structure"] = descriptor.column_structure.model_copy()
    return base.model_copy(update=updates, deep=True)


class TemplateMatcher:
    """
    Finds, creates and learns extraction templates.

    Args:
        store: Template and supplier profile store
        settings: Matching and learning thresholds
        clock: Source of timezone-aware timestamps
    """

    def __init__(
        self,
        store: TemplateStore,
        settings: Optional[TemplateSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.settings = settings or TemplateSettings()
        self.clock = clock
        self.logger = logger.bind(component="template_matcher")

        self._metrics = {
            "matches": 0,
            "templates_reused": 0,
            "templates_created": 0,
            "adaptive_clones": 0,
            "fallbacks": 0,
            "updates": 0,
            "adaptations": 0,
            "conflict_retries": 0,
        }

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    async def find_best_template(self, supplier_key: str, descriptor: LayoutDescriptor) -> Template:
        """
        Best template for the supplier and layout. Never returns None.

        Store failures are logged and answered with a transient generic
        template that is not persisted.
        """
        supplier_key = normalize_supplier_key(supplier_key)
        self._metrics["matches"] += 1

        try:
            candidates = await self.store.list_candidate_templates(supplier_key, descriptor.layout_type)
            profile = await self.store.get_profile(supplier_key)

            if not candidates:
                template = await self.store.create_template(
                    self.build_template(supplier_key, descriptor, profile)
                )
                self._metrics["templates_created"] += 1
                self.logger.info(
                    "Created template for new layout",
                    supplier_key=supplier_key,
                    template_id=template.id,
                    layout_type=descriptor.layout_type.value,
                )
                return template

            best, best_score = self.rank_candidates(candidates, descriptor, profile)[0]
            if best_score.total > self.settings.learning_threshold:
                self._metrics["templates_reused"] += 1
                self.logger.debug(
                    "Reusing template",
                    supplier_key=supplier_key,
                    template_id=best.id,
                    score=best_score.total,
                )
                return best

            clone = await self.store.create_template(
                self.build_adaptive_template(supplier_key, best, descriptor, profile, best_score)
            )
            self._metrics["adaptive_clones"] += 1
            self.logger.info(
                "Created adaptive template",
                supplier_key=supplier_key,
                template_id=clone.id,
                base_template_id=best.id,
                base_score=best_score.total,
            )
            return clone

        except Exception as e:
            self._metrics["fallbacks"] += 1
            self.logger.error(
                "Template lookup failed, using fallback template",
                supplier_key=supplier_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return fallback_template(descriptor)

    def rank_candidates(
        self,
        candidates: list[Template],
        descriptor: LayoutDescriptor,
        profile: Optional[SupplierProfile],
    ) -> list[tuple[Template, TemplateScore]]:
        """Candidates by descending score; ties keep store order."""
        now = self.clock()
        scored = [
            (
                template,
                calculate_template_score(
                    template, descriptor, profile, now, self.settings.recency_window_days
                ),
            )
            for template in candidates
        ]
        return sorted(scored, key=lambda pair: pair[1].total, reverse=True)

    def build_template(
        self,
        supplier_key: str,
        descriptor: LayoutDescriptor,
        profile: Optional[SupplierProfile],
    ) -> Template:
        """Fresh template from the descriptor and the supplier preset"""
        now = self.clock()
        preset = resolve_preset(supplier_key, descriptor)

        threshold = DEFAULT_THRESHOLD
        if profile is not None and profile.quality_metrics.consistency > CONSISTENT_SUPPLIER_THRESHOLD:
            threshold = CONSISTENT_SUPPLIER_THRESHOLD

        config = TemplateConfig(
            strategy=processing_strategy_for_confidence(descriptor.confidence),
            price_policy=preset.price_policy,
            column_priorities=complete_priorities(preset.column_priorities),
            confidence_threshold=threshold,
            skip_sheets=list(preset.skip_sheets),
            skip_sections=list(preset.skip_sections),
            processing_hints=dict(descriptor.processing_hints),
            price_profile=descriptor.price_patterns.model_copy() if descriptor.price_patterns else None,
            column_structure=descriptor.column_structure.model_copy() if descriptor.column_structure else None,
        )
        return Template(
            id=str(uuid.uuid4()),
            name=f"{supplier_key}_{descriptor.layout_type.value}_{int(time.time() * 1000)}",
            supplier_key=supplier_key,
            document_kind=descriptor.document_kind,
            layout_type=descriptor.layout_type,
            subtype=descriptor.subtype,
            config=config,
            created_at=now,
            updated_at=now,
        )

    def build_adaptive_template(
        self,
        supplier_key: str,
        base: Template,
        descriptor: LayoutDescriptor,
        profile: Optional[SupplierProfile],
        base_score: TemplateScore,
    ) -> Template:
        """Clone of ``base`` fitted to the descriptor. ``base`` is left untouched."""
        now = self.clock()

        adaptations = []
        if base.layout_type != descriptor.layout_type:
            adaptations.append(
                f"layout_type {base.layout_type.value} -> {descriptor.layout_type.value}"
            )
        if abs(base.config.confidence_threshold - descriptor.confidence) > THRESHOLD_DRIFT:
            adaptations.append(
                f"confidence_threshold drift {base.config.confidence_threshold} vs {descriptor.confidence}"
            )

        return Template(
            id=str(uuid.uuid4()),
            name=f"{supplier_key}_adaptive_{int(time.time() * 1000)}",
            supplier_key=supplier_key,
            document_kind=descriptor.document_kind,
            layout_type=descriptor.layout_type,
            subtype=descriptor.subtype,
            base_template_id=base.id,
            is_adaptive=True,
            config=self._adaptive_config(supplier_key, base, descriptor, profile),
            performance=TemplatePerformance(
                average_score=ADAPTIVE_BASE_SCORE,
                average_processing_time_ms=base.performance.average_processing_time_ms,
                average_product_count=base.performance.average_product_count,
            ),
            learning_history=[
                LearningEntry(
                    timestamp=now,
                    version="1.0.0",
                    overall_score=min(1.0, base_score.total),
                    issues=["no_template_above_threshold"],
                    adaptations=adaptations,
                )
            ],
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _adaptive_config(
        supplier_key: str,
        base: Template,
        descriptor: LayoutDescriptor,
        profile: Optional[SupplierProfile],
    ) -> TemplateConfig:
        config = merge_configurations(base.config, descriptor, profile)
        preset = preset_for(supplier_key) if base.is_generic else None
        if preset is None:
            return config
        # a generic base knows nothing about the supplier's price conventions
        return config.model_copy(
            update={
                "price_policy": preset.price_policy,
                "column_priorities": complete_priorities(preset.column_priorities),
                "skip_sections": list(preset.skip_sections) or list(config.skip_sections),
                "skip_sheets": list(preset.skip_sheets),
            }
        )

    async def ensure_default_templates(self) -> list[Template]:
        """Seed the generic templates, leaving existing ones alone."""
        seeded = []
        for template in default_templates():
            try:
                seeded.append(await self.store.create_template(template))
            except TemplateConflictError:
                self.logger.debug("Default template already present", template_id=template.id)
        if seeded:
            self.logger.info("Seeded default templates", template_ids=[t.id for t in seeded])
        return seeded

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    async def update_template(
        self,
        supplier_key: str,
        descriptor: LayoutDescriptor,
        outcome: OutcomeMetrics,
    ) -> None:
        """
        Fold an extraction outcome into the template and the supplier profile.

        Both writes are compare-and-swap; a lost race re-reads the record and
        reapplies the outcome, up to ``max_conflict_retries`` times.
        """
        supplier_key = normalize_supplier_key(supplier_key)
        metrics = calculate_success_metrics(outcome, self.settings.success_threshold)
        self._metrics["updates"] += 1

        usage_count = await self._update_template_record(outcome, metrics)
        await self._update_profile_record(supplier_key, descriptor, outcome, metrics, usage_count)

    async def _update_template_record(self, outcome: OutcomeMetrics, metrics: SuccessMetrics) -> Optional[int]:
        for attempt in range(self.settings.max_conflict_retries):
            template = await self.store.get_template(outcome.template_id)
            if template is None:
                self.logger.warning("Outcome for unknown template", template_id=outcome.template_id)
                return None

            now = self.clock()
            updated = template.model_copy(
                update={
                    "performance": update_performance(
                        template.performance, outcome, metrics, now, self.settings.confidence_window
                    ),
                    "updated_at": now,
                },
                deep=True,
            )
            adapted = metrics.overall_score < self.settings.learning_threshold
            if adapted:
                updated = adapt_template(updated, outcome, metrics, now)

            try:
                stored = await self.store.compare_and_swap_template(updated, template.revision)
            except TemplateConflictError as e:
                self._metrics["conflict_retries"] += 1
                self.logger.debug(
                    "Template write conflict, retrying",
                    template_id=template.id,
                    attempt=attempt + 1,
                    actual_revision=e.details.get("actual_revision"),
                )
                continue

            if adapted:
                self._metrics["adaptations"] += 1
                self.logger.info(
                    "Template adapted",
                    template_id=stored.id,
                    version=stored.version,
                    overall_score=round(metrics.overall_score, 4),
                )
            return stored.performance.usage_count

        self.logger.warning(
            "Gave up updating template after repeated conflicts",
            template_id=outcome.template_id,
            retries=self.settings.max_conflict_retries,
        )
        return None

    async def _update_profile_record(
        self,
        supplier_key: str,
        descriptor: LayoutDescriptor,
        outcome: OutcomeMetrics,
        metrics: SuccessMetrics,
        usage_count: Optional[int],
    ) -> None:
        for attempt in range(self.settings.max_conflict_retries):
            profile = await self.store.get_profile(supplier_key)
            expected_revision = profile.revision if profile is not None else None
            if usage_count is None:
                usage_count = (profile.processing_history.total_files if profile else 0) + 1

            updated = update_profile(
                profile,
                supplier_key,
                descriptor,
                outcome,
                metrics,
                usage_count,
                self.clock(),
                self.settings.adaptation_rate,
            )
            try:
                await self.store.save_profile(updated, expected_revision)
                return
            except TemplateConflictError:
                self._metrics["conflict_retries"] += 1
                self.logger.debug(
                    "Profile write conflict, retrying", supplier_key=supplier_key, attempt=attempt + 1
                )

        self.logger.warning(
            "Gave up updating supplier profile after repeated conflicts",
            supplier_key=supplier_key,
            retries=self.settings.max_conflict_retries,
        )

    def get_metrics(self) -> dict[str, int]:
        return dict(self._metrics)
