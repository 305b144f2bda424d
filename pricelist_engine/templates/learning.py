"""
Post-hoc learning from extraction outcomes.

Pure functions over frozen models: each returns a new template, performance
record or supplier profile and never touches its input.
"""
from datetime import datetime
from typing import Optional

from pricelist_engine.models.domain import (
    ExtractionStrategy,
    LayoutDescriptor,
    LearningEntry,
    OutcomeMetrics,
    SuccessMetrics,
    SupplierProfile,
    Template,
    TemplateConfig,
    TemplatePerformance,
)

TARGET_PRODUCT_COUNT = 10
TIME_BUDGET_MS = 60000.0

LOW_CONFIDENCE = 0.7
LOW_EXTRACTION_COUNT = 5
SLOW_PROCESSING_MS = 30000.0

THRESHOLD_STEP = 0.1
THRESHOLD_FLOOR = 0.5
PROCESSING_TIME_FACTOR = 1.5
PROCESSING_TIME_CAP_MS = 60000.0


def update_average(current: float, new_value: float, count: int) -> float:
    """Running mean where ``count`` already includes ``new_value``."""
    if count <= 1:
        return new_value
    return (current * (count - 1) + new_value) / count


def calculate_success_metrics(outcome: OutcomeMetrics, success_threshold: float = 0.6) -> SuccessMetrics:
    confidence_score = outcome.confidence
    count_score = min(1.0, outcome.extracted_count / TARGET_PRODUCT_COUNT) if outcome.extracted_count > 0 else 0.0
    if outcome.processing_time_ms > 0:
        time_score = max(0.0, 1.0 - outcome.processing_time_ms / TIME_BUDGET_MS)
    else:
        time_score = 0.5

    overall = confidence_score * 0.4 + count_score * 0.4 + time_score * 0.2
    return SuccessMetrics(
        confidence_score=confidence_score,
        count_score=count_score,
        time_score=time_score,
        overall_score=overall,
        is_successful=overall > success_threshold,
    )


def update_performance(
    performance: TemplatePerformance,
    outcome: OutcomeMetrics,
    metrics: SuccessMetrics,
    now: datetime,
    window: int = 10,
) -> TemplatePerformance:
    usage_count = performance.usage_count + 1
    return performance.model_copy(
        update={
            "usage_count": usage_count,
            "success_count": performance.success_count + (1 if metrics.is_successful else 0),
            "average_score": min(1.0, update_average(performance.average_score, metrics.overall_score, usage_count)),
            "average_processing_time_ms": update_average(
                performance.average_processing_time_ms, outcome.processing_time_ms, usage_count
            ),
            "average_product_count": update_average(
                performance.average_product_count, float(outcome.extracted_count), usage_count
            ),
            "recent_confidences": (performance.recent_confidences + [outcome.confidence])[-window:],
            "last_used": now,
        },
        deep=True,
    )


def analyze_issues(outcome: OutcomeMetrics) -> list[str]:
    issues = []
    if outcome.confidence < LOW_CONFIDENCE:
        issues.append("low_confidence")
    if outcome.extracted_count < LOW_EXTRACTION_COUNT:
        issues.append("low_extraction_count")
    if outcome.processing_time_ms > SLOW_PROCESSING_MS:
        issues.append("slow_processing")
    return issues


def adapt_config(config: TemplateConfig, issues: list[str]) -> tuple[TemplateConfig, list[str]]:
    """One bounded mutation per issue; returns the new config and what changed."""
    updates = {}
    adaptations = []

    if "low_confidence" in issues:
        threshold = round(max(THRESHOLD_FLOOR, config.confidence_threshold - THRESHOLD_STEP), 4)
        updates["confidence_threshold"] = threshold
        adaptations.append(f"confidence_threshold {config.confidence_threshold} -> {threshold}")

    if "low_extraction_count" in issues:
        updates["strategy"] = ExtractionStrategy.AGGRESSIVE
        adaptations.append(f"strategy {config.strategy.value} -> aggressive")

    if "slow_processing" in issues:
        limit = min(PROCESSING_TIME_CAP_MS, config.max_processing_time_ms * PROCESSING_TIME_FACTOR)
        updates["max_processing_time_ms"] = limit
        adaptations.append(f"max_processing_time_ms {config.max_processing_time_ms} -> {limit}")

    return config.model_copy(update=updates, deep=True), adaptations


def adapt_template(
    template: Template,
    outcome: OutcomeMetrics,
    metrics: SuccessMetrics,
    now: datetime,
) -> Template:
    """Apply issue-driven adaptations, bump the patch version and log the change."""
    issues = analyze_issues(outcome)
    config, adaptations = adapt_config(template.config, issues)
    version = template.next_patch_version()

    entry = LearningEntry(
        timestamp=now,
        version=version,
        overall_score=metrics.overall_score,
        issues=issues,
        adaptations=adaptations,
    )
    return template.model_copy(
        update={
            "config": config,
            "version": version,
            "learning_history": template.learning_history + [entry],
            "updated_at": now,
        },
        deep=True,
    )


def _smooth(current: float, observation: float, alpha: float, first: bool) -> float:
    if first:
        return observation
    return current * (1 - alpha) + observation * alpha


def _increment(histogram: dict[str, int], key: str) -> dict[str, int]:
    updated = dict(histogram)
    updated[key] = updated.get(key, 0) + 1
    return updated


def update_profile(
    profile: Optional[SupplierProfile],
    supplier_key: str,
    descriptor: LayoutDescriptor,
    outcome: OutcomeMetrics,
    metrics: SuccessMetrics,
    template_usage_count: int,
    now: datetime,
    alpha: float = 0.1,
) -> SupplierProfile:
    """
    Fold one outcome into the supplier profile.

    Processing history uses running means. Quality metrics use exponential
    smoothing with factor ``alpha``; the first observation is taken as-is.
    """
    if profile is None:
        profile = SupplierProfile(supplier_key=supplier_key, created_at=now, updated_at=now)

    history = profile.processing_history
    first = history.total_files == 0
    total_files = history.total_files + 1

    processing_history = history.model_copy(
        update={
            "total_files": total_files,
            "successful_files": history.successful_files + (1 if metrics.is_successful else 0),
            "total_products": history.total_products + outcome.extracted_count,
            "average_confidence": update_average(history.average_confidence, outcome.confidence, total_files),
            "average_processing_time_ms": update_average(
                history.average_processing_time_ms, outcome.processing_time_ms, total_files
            ),
            "last_processed": now,
        }
    )

    success_rates = dict(profile.template_success_rates)
    success_rates[outcome.template_id] = update_average(
        success_rates.get(outcome.template_id, 0.0),
        1.0 if metrics.is_successful else 0.0,
        template_usage_count,
    )

    patterns = profile.common_patterns
    price_formats = patterns.price_formats
    if outcome.price_format:
        price_formats = _increment(price_formats, outcome.price_format)
    common_patterns = patterns.model_copy(
        update={
            "file_formats": _increment(patterns.file_formats, descriptor.document_kind.value),
            "layout_types": _increment(patterns.layout_types, descriptor.layout_type.value),
            "price_formats": dict(price_formats),
        }
    )

    quality = profile.quality_metrics
    quality_metrics = quality.model_copy(
        update={
            "consistency": _smooth(quality.consistency, outcome.confidence, alpha, first),
            "reliability": _smooth(quality.reliability, 1.0 if metrics.is_successful else 0.0, alpha, first),
            "adaptability": _smooth(quality.adaptability, 0.8 if outcome.template_was_adapted else 0.6, alpha, first),
        }
    )

    return profile.model_copy(
        update={
            "processing_history": processing_history,
            "template_success_rates": success_rates,
            "common_patterns": common_patterns,
            "quality_metrics": quality_metrics,
            "updated_at": now,
        },
        deep=True,
    )
