"""SQLite-based store for aggregated external listings.

This module provides the canonical listing store, enabling:
- Idempotent upserts keyed by (source, external_id)
- Freshness expiry: rows not re-synced within the retention window are
  hidden from reads and purged by the store itself
- Filtered, paginated reads shaped like native listing queries
"""

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from ..models.listing import ExternalListing, ListingFilters, ListingPage, Pagination, utcnow

logger = logging.getLogger(__name__)

# Default database location
DEFAULT_DB_PATH = Path.home() / ".internagg" / "listings.db"

# Default retention (30 days without a re-sync)
DEFAULT_RETENTION_DAYS = 30

# Largest page the read path will serve
MAX_PAGE_SIZE = 100


def _ts(value: datetime) -> str:
    """Fixed-width UTC timestamp so string comparison orders correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    try:
        value = value.astimezone(timezone.utc)
    except OverflowError:
        # Offset pushes the instant outside datetime's range; clamp to the edge
        value = datetime.max if value.year > 1 else datetime.min
    return value.strftime("%Y-%m-%dT%H:%M:%S.%f")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ListingStore:
    """SQLite store for external listings.

    Example:
        store = ListingStore(db_path=Path("listings.db"), retention_days=30)

        # Insert or refresh a listing
        store.upsert_listing(listing)

        # Read a page of Finance listings
        page = store.query(ListingFilters(category="Finance"), page=1, limit=10)

        # Per-source counts and average stipend
        stats = store.get_stats()
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        purge_interval_minutes: int = 60,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the listing store.

        Args:
            db_path: SQLite database file. Defaults to ~/.internagg/listings.db
            retention_days: Days a listing survives without being re-synced
            purge_interval_minutes: Minimum gap between automatic purges
            clock: Returns the current UTC time; injectable for tests
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.retention = timedelta(days=retention_days)
        self.purge_interval = timedelta(minutes=purge_interval_minutes)
        self._clock = clock or utcnow
        self._last_purge: Optional[datetime] = None

        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS external_listings (
                    source TEXT NOT NULL,
                    external_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    company TEXT NOT NULL,
                    description TEXT,
                    category TEXT,
                    city TEXT,
                    state TEXT,
                    country TEXT,
                    location_type TEXT,
                    stipend_amount INTEGER DEFAULT 0,
                    posted_date TEXT,
                    last_synced_at TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    data JSON NOT NULL,
                    PRIMARY KEY (source, external_id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_source_active "
                "ON external_listings(source, is_active)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_category_location "
                "ON external_listings(category, location_type)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_posted "
                "ON external_listings(posted_date DESC)"
            )
            # Drives freshness filtering and purging
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_last_synced "
                "ON external_listings(last_synced_at)"
            )
            conn.commit()

    def _cutoff(self) -> str:
        return _ts(self._clock() - self.retention)

    def _maybe_purge(self) -> None:
        now = self._clock()
        if self._last_purge is None or now - self._last_purge >= self.purge_interval:
            self.purge_expired()

    def upsert_listing(self, listing: ExternalListing) -> ExternalListing:
        """Insert or update a listing keyed by (source, external_id).

        The latest payload wins and ``last_synced_at`` is set to now.

        Args:
            listing: Listing to persist

        Returns:
            The listing as stored
        """
        self._maybe_purge()
        stored = listing.model_copy(update={"last_synced_at": self._clock(), "is_external": True})

        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO external_listings
                (source, external_id, title, company, description, category,
                 city, state, country, location_type, stipend_amount,
                 posted_date, last_synced_at, is_active, data)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stored.source,
                    stored.external_id,
                    stored.title,
                    stored.company,
                    stored.description,
                    stored.category,
                    stored.location.city,
                    stored.location.state,
                    stored.location.country,
                    stored.location.type.value,
                    stored.stipend.amount,
                    _ts(stored.posted_date),
                    _ts(stored.last_synced_at),
                    int(stored.is_active),
                    stored.model_dump_json(),
                ),
            )
            conn.commit()
        return stored

    def _where(self, filters: Optional[ListingFilters]) -> tuple[str, list]:
        conditions = ["is_active = 1", "last_synced_at > ?"]
        params: list = [self._cutoff()]

        if filters is None:
            return " AND ".join(conditions), params

        if filters.source:
            conditions.append("source = ?")
            params.append(filters.source)

        if filters.category:
            conditions.append("category = ?")
            params.append(filters.category)

        if filters.search:
            term = f"%{_escape_like(filters.search)}%"
            conditions.append(
                "(title LIKE ? ESCAPE '\\' OR company LIKE ? ESCAPE '\\' "
                "OR description LIKE ? ESCAPE '\\')"
            )
            params.extend([term, term, term])

        if filters.location:
            term = f"%{_escape_like(filters.location)}%"
            conditions.append(
                "(city LIKE ? ESCAPE '\\' OR state LIKE ? ESCAPE '\\' "
                "OR country LIKE ? ESCAPE '\\')"
            )
            params.extend([term, term, term])

        if filters.remote:
            conditions.append("location_type = 'remote'")

        return " AND ".join(conditions), params

    def query(
        self,
        filters: Optional[ListingFilters] = None,
        page: int = 1,
        limit: int = 10,
    ) -> ListingPage:
        """Query fresh, active listings, newest first.

        Args:
            filters: Source, category, free-text, location and remote filters
            page: 1-based page number
            limit: Page size (capped at 100)

        Returns:
            ListingPage with ``is_external`` set on every listing
        """
        self._maybe_purge()
        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        where_clause, params = self._where(filters)

        with sqlite3.connect(self.db_path) as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM external_listings WHERE {where_clause}",
                params,
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT data FROM external_listings WHERE {where_clause}
                ORDER BY posted_date DESC, external_id
                LIMIT ? OFFSET ?
                """,
                [*params, limit, (page - 1) * limit],
            ).fetchall()

        listings = [ExternalListing.model_validate_json(row[0]) for row in rows]
        return ListingPage(data=listings, pagination=Pagination.build(page, limit, total))

    def get(self, source: str, external_id: str, include_expired: bool = False) -> Optional[ExternalListing]:
        """Get a single listing, or None if missing or expired."""
        query = "SELECT data FROM external_listings WHERE source = ? AND external_id = ?"
        params = [source, external_id]
        if not include_expired:
            query += " AND last_synced_at > ?"
            params.append(self._cutoff())

        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(query, params).fetchone()

        if row:
            return ExternalListing.model_validate_json(row[0])
        return None

    def count(self, source: Optional[str] = None, include_expired: bool = False) -> int:
        """Count stored listings.

        Args:
            source: Filter by source
            include_expired: Include rows past the retention window
        """
        conditions = []
        params = []

        if not include_expired:
            conditions.append("last_synced_at > ?")
            params.append(self._cutoff())

        if source:
            conditions.append("source = ?")
            params.append(source)

        where_clause = " AND ".join(conditions) if conditions else "1=1"

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                f"SELECT COUNT(*) FROM external_listings WHERE {where_clause}",
                params,
            )
            return cursor.fetchone()[0]

    def purge_expired(self) -> int:
        """Delete rows not re-synced within the retention window.

        Returns:
            Number of rows deleted
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM external_listings WHERE last_synced_at <= ?",
                (self._cutoff(),),
            )
            conn.commit()
            deleted = cursor.rowcount

        self._last_purge = self._clock()
        if deleted > 0:
            logger.info(f"Purged {deleted} expired external listings")
        return deleted

    def get_stats(self) -> dict:
        """Per-source listing count and average stipend over live listings.

        Returns:
            {"total": int, "by_source": {source: {"count": int, "avg_stipend": int}}}
        """
        where_clause, params = self._where(None)

        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT source, COUNT(*), AVG(stipend_amount)
                FROM external_listings WHERE {where_clause}
                GROUP BY source ORDER BY source
                """,
                params,
            ).fetchall()

        by_source = {
            source: {"count": count, "avg_stipend": round(avg or 0)}
            for source, count, avg in rows
        }
        return {
            "total": sum(item["count"] for item in by_source.values()),
            "by_source": by_source,
        }
