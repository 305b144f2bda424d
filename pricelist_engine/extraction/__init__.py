"""Price extraction and conflict resolution."""
from pricelist_engine.extraction.extractor import PriceExtractor
from pricelist_engine.extraction.resolution import calculate_run_confidence, select_best_price

__all__ = ["PriceExtractor", "calculate_run_confidence", "select_best_price"]
