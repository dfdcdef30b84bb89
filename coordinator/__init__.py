"""Coordinator: routes queries to downstream services with cascading fallback."""

__version__ = "0.1.0"
