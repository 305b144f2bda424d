"""
Supplier Pricelist Engine

Layout classification, price resolution and self-adapting extraction templates
for supplier pricelists delivered as PDF text or spreadsheets.
"""

__version__ = "1.0.0"
