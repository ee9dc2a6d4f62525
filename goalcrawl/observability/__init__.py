"""Observability helpers (metrics and run correlation)."""
