"""Data models for internagg."""

from internagg.models.listing import (
    ExternalListing,
    ListingFilters,
    ListingPage,
    ListingType,
    Location,
    LocationType,
    Pagination,
    RawListing,
    Requirements,
    Stipend,
    StipendPeriod,
)
from internagg.models.sync import SyncError, SyncResult, SyncRun

__all__ = [
    "ExternalListing",
    "ListingFilters",
    "ListingPage",
    "ListingType",
    "Location",
    "LocationType",
    "Pagination",
    "RawListing",
    "Requirements",
    "Stipend",
    "StipendPeriod",
    "SyncError",
    "SyncResult",
    "SyncRun",
]
