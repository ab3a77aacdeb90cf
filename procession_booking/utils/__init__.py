"""Utility helpers for the procession seat booking engine."""
