"""
Unit tests for price conflict resolution and run confidence.
"""
from decimal import Decimal

from pricelist_engine.extraction.resolution import calculate_run_confidence, select_best_price
from pricelist_engine.models.domain import PriceCandidate, PriceColumn, PriceKind, ProductCandidate


def candidate(kind: PriceKind, value: str, confidence: float, position: int = 0) -> PriceCandidate:
    return PriceCandidate(
        raw_text=f"R{value}",
        numeric_value=Decimal(value),
        price_kind=kind,
        confidence=confidence,
        position=position,
    )


def product(kind: PriceKind) -> ProductCandidate:
    price = candidate(kind, "100", 0.8)
    return ProductCandidate(
        name="Speaker",
        selected_price=price,
        all_price_candidates=[price],
        extraction_method="generic_pdf",
        confidence=0.8,
    )


class TestSelectBestPrice:
    """Test priority-based selection"""

    def test_empty(self):
        assert select_best_price([]) is None

    def test_new_rrp_wins_and_is_boosted(self):
        old = candidate(PriceKind.OLD_RRP, "9990.00", 0.85, position=0)
        new = candidate(PriceKind.NEW_RRP, "8990.00", 0.95, position=10)

        selected = select_best_price([old, new])

        assert selected.price_kind == PriceKind.NEW_RRP
        assert selected.numeric_value == Decimal("8990.00")
        assert selected.confidence == 1.0
        assert new.confidence == 0.95

    def test_priority_beats_confidence(self):
        cost = candidate(PriceKind.COST_PRICE, "50", 0.99)
        rrp = candidate(PriceKind.RRP, "100", 0.5)

        assert select_best_price([cost, rrp]) is rrp

    def test_confidence_breaks_priority_ties(self):
        low = candidate(PriceKind.RRP, "100", 0.7)
        high = candidate(PriceKind.RRP, "120", 0.9)

        assert select_best_price([low, high]) is high

    def test_full_ties_keep_scan_order(self):
        first = candidate(PriceKind.GENERIC_PRICE, "100", 0.6, position=0)
        second = candidate(PriceKind.GENERIC_PRICE, "90", 0.6, position=8)

        assert select_best_price([first, second]) is first


class TestRunConfidence:
    """Test the 0-100 run confidence"""

    def test_nothing_extracted(self):
        assert calculate_run_confidence([], []) == 0.0

    def test_new_rrp_column_and_uniform_kinds(self):
        columns = [PriceColumn(price_kind=PriceKind.NEW_RRP, label="New RRP")]

        assert calculate_run_confidence([product(PriceKind.NEW_RRP)], columns) == 90.0

    def test_old_rrp_without_new_rrp_penalised(self):
        columns = [PriceColumn(price_kind=PriceKind.OLD_RRP, label="Old RRP")]

        assert calculate_run_confidence([product(PriceKind.OLD_RRP)], columns) == 30.0

    def test_mixed_kinds(self):
        columns = [PriceColumn(price_kind=PriceKind.RRP, label="RRP")]
        products = [product(PriceKind.RRP), product(PriceKind.GENERIC_PRICE)]

        assert calculate_run_confidence(products, columns) == 30.0

    def test_large_runs_capped_at_100(self):
        columns = [PriceColumn(price_kind=PriceKind.NEW_RRP, label="New RRP")]
        products = [product(PriceKind.NEW_RRP) for _ in range(12)]

        assert calculate_run_confidence(products, columns) == 100.0
