"""
Template match scoring.

The total is the weighted sum of five sub-scores, clamped to [0, 1], plus a
flat bonus of a tenth of the template's average performance score. The bonus
is added after the clamp, so totals range over [0, 1.1].
"""
from datetime import datetime
from typing import Optional

from pricelist_engine.models.domain import (
    DocumentKind,
    LayoutDescriptor,
    LayoutType,
    SupplierProfile,
    Template,
    TemplateScore,
    utc_now,
)

LAYOUT_WEIGHT = 0.30
PRICE_VOCABULARY_WEIGHT = 0.25
COLUMN_STRUCTURE_WEIGHT = 0.20
FILE_FORMAT_WEIGHT = 0.15
HISTORY_WEIGHT = 0.10
PERFORMANCE_BONUS_FACTOR = 0.1

NEUTRAL = 0.5
NEVER_USED_DAYS = 365.0


def layout_score(template: Template, descriptor: LayoutDescriptor) -> float:
    if template.layout_type == descriptor.layout_type:
        return 1.0 if template.subtype == descriptor.subtype else 0.8
    if template.layout_type == LayoutType.GENERIC:
        return 0.5
    return 0.2


def price_vocabulary_score(template: Template, descriptor: LayoutDescriptor) -> float:
    learned = template.config.price_profile
    current = descriptor.price_patterns
    if learned is None or current is None:
        return NEUTRAL

    score = 0.0
    if learned.primary_format == current.primary_format:
        score += 0.3
    if learned.has_new_rrp == current.has_new_rrp:
        score += 0.2
    if learned.has_old_rrp == current.has_old_rrp:
        score += 0.2

    learned_refs = learned.total_price_references
    current_refs = current.total_price_references
    if learned_refs > 0 and current_refs > 0:
        score += 0.3 * min(learned_refs, current_refs) / max(learned_refs, current_refs)

    return score


def column_structure_score(template: Template, descriptor: LayoutDescriptor) -> float:
    """Spreadsheet-only comparison of the primary sheet shape."""
    if not descriptor.is_spreadsheet:
        return NEUTRAL
    learned = template.config.column_structure
    current = descriptor.column_structure
    if learned is None or current is None:
        return NEUTRAL

    score = 0.0
    sheet_delta = abs(learned.sheet_count - current.sheet_count)
    if sheet_delta == 0:
        score += 0.3
    elif sheet_delta == 1:
        score += 0.15
    if abs(learned.column_count - current.column_count) <= 2:
        score += 0.2
    if learned.has_headers == current.has_headers:
        score += 0.2
    if abs(learned.data_quality - current.data_quality) < 0.2:
        score += 0.3
    return score


def file_format_score(template: Template, descriptor: LayoutDescriptor) -> float:
    if template.document_kind == descriptor.document_kind:
        return 1.0
    if template.document_kind == DocumentKind.GENERIC:
        return 0.6
    return 0.3


def history_score(
    template: Template,
    profile: Optional[SupplierProfile],
    now: Optional[datetime] = None,
    recency_window_days: int = 30,
) -> float:
    """0.7 x per-template success rate + 0.3 x linear recency decay."""
    if profile is None:
        return NEUTRAL

    success_rate = profile.template_success_rates.get(template.id, 0.0)

    last_used = template.performance.last_used
    if last_used is None:
        days = NEVER_USED_DAYS
    else:
        days = max(0.0, ((now or utc_now()) - last_used).total_seconds() / 86400)
    recency = max(0.0, 1.0 - days / recency_window_days)

    return success_rate * 0.7 + recency * 0.3


def calculate_template_score(
    template: Template,
    descriptor: LayoutDescriptor,
    profile: Optional[SupplierProfile] = None,
    now: Optional[datetime] = None,
    recency_window_days: int = 30,
) -> TemplateScore:
    layout = layout_score(template, descriptor)
    vocabulary = price_vocabulary_score(template, descriptor)
    columns = column_structure_score(template, descriptor)
    file_format = file_format_score(template, descriptor)
    history = history_score(template, profile, now, recency_window_days)

    weighted = (
        layout * LAYOUT_WEIGHT
        + vocabulary * PRICE_VOCABULARY_WEIGHT
        + columns * COLUMN_STRUCTURE_WEIGHT
        + file_format * FILE_FORMAT_WEIGHT
        + history * HISTORY_WEIGHT
    )
    bonus = template.performance.average_score * PERFORMANCE_BONUS_FACTOR

    return TemplateScore(
        template_id=template.id,
        layout_match=layout,
        price_vocabulary=vocabulary,
        column_structure=columns,
        file_format=file_format,
        history=history,
        performance_bonus=bonus,
        total=round(min(1.0, max(0.0, weighted)) + bonus, 6),
    )
