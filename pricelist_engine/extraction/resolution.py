"""
Price conflict resolution.
"""
from typing import Optional, Sequence

from pricelist_engine.models.domain import PriceCandidate, PriceColumn, PriceKind, ProductCandidate

NEW_RRP_BOOST = 0.1


def select_best_price(candidates: Sequence[PriceCandidate]) -> Optional[PriceCandidate]:
    """
    Pick the current price among all candidates found at one locus.

    Candidates are ordered by (priority desc, confidence desc); ties keep scan
    order. A selected New RRP gets a confidence boost. Returns None only for
    an empty candidate set and never mutates its input.
    """
    if not candidates:
        return None

    ranked = sorted(
        enumerate(candidates),
        key=lambda item: (-item[1].priority, -item[1].confidence, item[0]),
    )
    best = ranked[0][1]

    if best.price_kind == PriceKind.NEW_RRP:
        best = best.model_copy(
            update={"confidence": min(1.0, round(best.confidence + NEW_RRP_BOOST, 4))}
        )
    return best


def calculate_run_confidence(
    products: Sequence[ProductCandidate], price_columns: Sequence[PriceColumn]
) -> float:
    """
    Run-level confidence on a 0-100 scale.

    Exactly 0 when nothing was extracted.
    """
    if not products:
        return 0.0

    column_kinds = {column.price_kind for column in price_columns}
    resolved_kinds = {product.price_kind for product in products}

    score = 30.0
    if PriceKind.NEW_RRP in column_kinds:
        score += 40
    if len(resolved_kinds) == 1:
        score += 20
    if PriceKind.OLD_RRP in column_kinds and PriceKind.NEW_RRP not in column_kinds:
        score -= 20
    if len(products) >= 10:
        score += 10

    return max(0.0, min(100.0, score))
