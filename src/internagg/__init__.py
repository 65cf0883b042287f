"""Aggregation of external internship listings into a canonical store."""

__version__ = "0.1.0"
