"""Procession seat booking engine."""

__version__ = "1.0.0"
