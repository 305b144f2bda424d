"""Layout classification of decoded pricelists."""
