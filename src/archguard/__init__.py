"""Archguard - architectural rules for structural code models."""

__version__ = "0.3.0"
