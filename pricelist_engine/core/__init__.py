"""Shared engine primitives."""
