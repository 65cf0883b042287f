"""Storage modules for external listing persistence.

This package provides the canonical SQLite store that aggregated listings
are upserted into and read back from.
"""

from .listing_store import ListingStore

__all__ = ["ListingStore"]
