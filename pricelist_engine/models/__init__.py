"""Domain and database models."""
