"""Template and profile persistence."""
