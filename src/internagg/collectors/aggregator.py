"""External listing aggregation orchestrator.

This module provides the JobAggregator class, which runs a fixed set of
search queries against every registered source (each call wrapped by the
resilience executor), categorizes and upserts the results into the listing
store, and serves the stored listings back to the marketplace read path.
"""

import asyncio
import hashlib
import logging
import sqlite3
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from ..analysis.categorizer import Categorizer
from ..config import DEFAULT_QUERIES
from ..models.listing import ExternalListing, ListingFilters, ListingPage, Pagination, RawListing
from ..models.sync import SyncResult, SyncRun
from ..storage.listing_store import ListingStore
from .base import ListingSource, classify_error
from .cache import ResponseCache
from .indeed import IndeedSource
from .internshala import InternshalaSource
from .linkedin import LinkedInSource
from .resilience import ResilienceExecutor

logger = logging.getLogger(__name__)


def external_id_for(listing: RawListing) -> str:
    """Provider id when present, else a digest of the identifying fields."""
    if listing.id:
        return listing.id
    content = "|".join(
        part.strip().lower()
        for part in (listing.source, listing.title, listing.company, listing.apply_url)
    )
    return f"{listing.source}_{hashlib.sha1(content.encode()).hexdigest()[:16]}"


class JobAggregator:
    """Orchestrates listing aggregation from multiple sources.

    Features:
        - Sequential query x source fan-out with a politeness delay
        - Every source call wrapped by the ResilienceExecutor
        - At most one run at a time; extra triggers are rejected, not queued
        - Partial failures recorded in the run stats, never raised
        - Blended reads that degrade to native-only results

    Example:
        aggregator = JobAggregator.from_settings()
        result = await aggregator.sync_all_platforms(["data science"])
        page = aggregator.get_external_jobs(ListingFilters(category="Finance"))
        print(aggregator.get_status()["api_health"])
    """

    def __init__(
        self,
        sources: list[ListingSource],
        executor: ResilienceExecutor,
        store: ListingStore,
        categorizer: Optional[Categorizer] = None,
        queries: Optional[list[str]] = None,
        politeness_delay: float = 2.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """Initialize the JobAggregator.

        Args:
            sources: Source adapters, queried in priority order
            executor: Shared resilience executor wrapping every source call
            store: Listing store results are upserted into
            categorizer: Category assignment (default keyword table if None)
            queries: Default queries for a run
            politeness_delay: Seconds to wait between successive source calls
            sleep: Coroutine used for the politeness delay, injectable for tests
        """
        self._sources: list[ListingSource] = []
        for source in sources:
            self.add_source(source)
        self.executor = executor
        self.store = store
        self.categorizer = categorizer or Categorizer()
        self.queries = list(queries or DEFAULT_QUERIES)
        self.politeness_delay = politeness_delay
        self._sleep = sleep or asyncio.sleep

        self._is_running = False
        self._current_run: Optional[SyncRun] = None
        self.last_sync_time: Optional[datetime] = None
        self.last_sync_stats: Optional[SyncRun] = None

    @classmethod
    def from_settings(cls, settings: Any = None, **overrides: Any) -> "JobAggregator":
        """Wire the default sources, executor and store from Settings."""
        if settings is None:
            from ..config import config as settings

        cache = ResponseCache(ttl_seconds=settings.response_cache_ttl)
        source_kwargs = {
            "cache": cache,
            "api_key": settings.rapidapi_key,
            "timeout": settings.request_timeout,
            "user_agent": settings.user_agent,
        }
        components = {
            "sources": [
                LinkedInSource(**source_kwargs),
                IndeedSource(**source_kwargs),
                InternshalaSource(**source_kwargs),
            ],
            "executor": ResilienceExecutor.from_settings(settings),
            "store": ListingStore(
                db_path=settings.db_path,
                retention_days=settings.retention_days,
                purge_interval_minutes=settings.purge_interval_minutes,
            ),
            "queries": settings.default_queries,
            "politeness_delay": settings.politeness_delay,
        }
        components.update(overrides)
        return cls(**components)

    @property
    def sources(self) -> list[ListingSource]:
        return list(self._sources)

    @property
    def is_running(self) -> bool:
        return self._is_running

    def add_source(self, source: ListingSource) -> None:
        """Register a source; sources stay sorted by priority."""
        if source not in self._sources:
            self._sources.append(source)
            self._sources.sort(key=lambda s: s.priority)
            logger.debug(f"Added source: {source.name} (priority {source.priority})")

    def get_source(self, name: str) -> Optional[ListingSource]:
        """Get a registered source by name."""
        for source in self._sources:
            if source.name == name:
                return source
        return None

    async def sync_all_platforms(self, queries: Optional[list[str]] = None) -> SyncResult:
        """Run every query against every source and upsert the results.

        Args:
            queries: Search queries (defaults to the configured set)

        Returns:
            SyncResult; ``already_running`` is set when another run is active

        Raises:
            Exception: Only if the run cannot start (store unusable)
        """
        if self._is_running:
            logger.warning("Sync already in progress, skipping")
            return SyncResult(success=False, already_running=True, message="Sync already in progress")

        # Claimed before the first await, so concurrent triggers see it
        self._is_running = True
        try:
            self.store.purge_expired()
            run = SyncRun()
            self._current_run = run
            queries = list(self.queries if queries is None else queries)
            logger.info(
                f"Starting aggregation: {len(queries)} queries x {len(self._sources)} sources"
            )

            seen: set[tuple[str, str]] = set()
            first_call = True
            for query in queries:
                logger.info(f"Fetching: '{query}'")
                for source in self._sources:
                    if not first_call:
                        await self._sleep(self.politeness_delay)
                    first_call = False
                    await self._sync_source(run, source, query, seen)

            run.finish()
            self.last_sync_time = run.end_time
            self.last_sync_stats = run

            logger.info(
                f"Sync completed: {run.total_synced} listings synced, "
                f"by source {run.by_source}, {len(run.errors)} errors, "
                f"{run.duration_seconds:.0f}s elapsed"
            )
            return SyncResult(success=True, message="Sync completed", stats=run)
        finally:
            self._is_running = False
            self._current_run = None

    async def _sync_source(
        self, run: SyncRun, source: ListingSource, query: str, seen: set[tuple[str, str]]
    ) -> None:
        try:
            listings = await self.executor.execute(lambda: source.search(query), source.name)
        except Exception as e:
            kind = classify_error(e)
            logger.error(f"Error fetching '{query}' from {source.name}: {e}")
            run.record_error(source=source.name, query=query, kind=kind.value, error=str(e))
            return

        # Ids already upserted earlier in this run are skipped
        for raw in listings or []:
            try:
                listing = self.build_listing(raw)
                key = (listing.source, listing.external_id)
                if key in seen:
                    continue
                seen.add(key)
                self.store.upsert_listing(listing)
                run.record_success(listing.source)
            except (ValidationError, ValueError) as e:
                run.record_error(
                    source=source.name, query=query, title=getattr(raw, "title", None),
                    kind="parse", error=str(e),
                )
            except sqlite3.Error as e:
                logger.warning(f"Upsert failed for {source.name} listing: {e}")
                run.record_error(
                    source=source.name, query=query, title=getattr(raw, "title", None),
                    kind="store", error=str(e),
                )
            except Exception as e:
                logger.warning(f"Skipping {source.name} listing: {e}")
                run.record_error(
                    source=source.name, query=query, title=getattr(raw, "title", None),
                    kind=classify_error(e).value, error=str(e),
                )

    def build_listing(self, raw: RawListing) -> ExternalListing:
        """Turn an adapter listing into a categorized, active ExternalListing."""
        data = raw.model_dump()
        data["description"] = raw.description or f"{raw.title} at {raw.company}"
        data["external_id"] = external_id_for(raw)
        data["category"] = self.categorizer.categorize(raw.title, raw.description)
        data["is_active"] = True
        return ExternalListing.model_validate(data)

    def get_status(self) -> dict:
        """Return run state, last run summary and per-source health.

        Run stats are a snapshot; later progress does not change them.
        """
        run = self._current_run or self.last_sync_stats
        return {
            "is_running": self._is_running,
            "last_sync_time": self.last_sync_time,
            "last_sync_stats": run.model_copy(deep=True) if run else None,
            "api_health": self.executor.health([s.name for s in self._sources]),
        }

    def get_external_jobs(
        self,
        filters: Optional[ListingFilters] = None,
        page: int = 1,
        limit: int = 10,
    ) -> ListingPage:
        """Stored external listings, newest first, each marked external."""
        return self.store.query(filters, page=page, limit=limit)

    async def search_external(
        self,
        query: str,
        platform: Optional[str] = None,
        filters: Optional[ListingFilters] = None,
    ) -> list[ExternalListing]:
        """Search sources live, without touching the store.

        Args:
            query: Free-text search terms
            platform: Source name, or None/"all" for every source
            filters: Location/remote hints passed to the adapters

        Returns:
            Categorized listings in source priority order; failing sources
            contribute nothing

        Raises:
            ValueError: If platform names no registered source
        """
        if platform in (None, "all"):
            sources = self.sources
        else:
            source = self.get_source(platform)
            if source is None:
                raise ValueError(f"Unknown platform: {platform}")
            sources = [source]

        listings: list[ExternalListing] = []
        seen: set[str] = set()
        for index, source in enumerate(sources):
            if index:
                await self._sleep(self.politeness_delay)
            try:
                results = await self.executor.execute(
                    lambda: source.search(query, filters), source.name
                )
            except Exception as e:
                logger.warning(
                    f"Live search on {source.name} failed ({classify_error(e).value}): {e}"
                )
                continue

            for raw in results or []:
                try:
                    listing = self.build_listing(raw)
                except (ValidationError, ValueError) as e:
                    logger.debug(f"Skipping malformed {source.name} listing: {e}")
                    continue
                key = f"{listing.source}:{listing.external_id}"
                if key not in seen:
                    seen.add(key)
                    listings.append(listing)

        logger.info(f"Live search '{query}' on {platform or 'all'}: {len(listings)} listings")
        return listings

    def get_stats(self) -> dict:
        """Per-source counts and average stipend of stored listings."""
        return self.store.get_stats()

    def blend_with_native(
        self,
        native_items: list[Any],
        native_total: int,
        filters: Optional[ListingFilters] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        """Merge a page of native listings with the matching external page.

        Native items come first. The combined total is native plus external;
        if the store read fails, the native page is returned on its own.
        """
        external_items: list[dict] = []
        external_total = 0
        try:
            external = self.get_external_jobs(filters, page=page, limit=limit)
            external_items = [listing.model_dump(mode="json") for listing in external.data]
            external_total = external.pagination.total
        except (sqlite3.Error, ValidationError) as e:
            logger.error(f"External listing query failed, serving native results only: {e}")

        data = list(native_items) + external_items
        total = native_total + external_total
        return {
            "success": True,
            "count": len(data),
            "pagination": Pagination.build(page, limit, total).model_dump(),
            "data": data,
            "sources": {"local": len(native_items), "external": len(external_items)},
        }

    async def close(self) -> None:
        """Close all sources and release resources."""
        for source in self._sources:
            try:
                await source.close()
            except Exception as e:
                logger.debug(f"Error closing {source.name}: {e}")

    async def __aenter__(self) -> "JobAggregator":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
