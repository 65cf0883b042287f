"""Listing analysis helpers.

This package currently provides keyword categorization of external listings.
"""

from .categorizer import CATEGORY_KEYWORDS, Categorizer

__all__ = ["CATEGORY_KEYWORDS", "Categorizer"]
