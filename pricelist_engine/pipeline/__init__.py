"""Per-document processing pipeline."""
