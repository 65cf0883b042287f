"""Pytest fixtures and test utilities."""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

import pytest

from internagg.collectors.aggregator import JobAggregator
from internagg.collectors.base import ListingSource
from internagg.collectors.cache import ResponseCache
from internagg.collectors.resilience import ResilienceExecutor
from internagg.models.listing import ExternalListing, ListingFilters, Location, RawListing, Stipend
from internagg.storage.listing_store import ListingStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUtcClock:
    """Wall clock for the store, advanced explicitly."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Async sleep replacement that records delays and returns at once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeSource(ListingSource):
    """In-memory source returning canned listings or raising a canned error."""

    BASE_URL = "https://example.com"

    def __init__(
        self,
        name: str,
        priority: int = 1,
        listings: Optional[list[RawListing]] = None,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        super().__init__(cache=ResponseCache(ttl_seconds=0))
        self.name = name
        self.priority = priority
        self.listings = listings or []
        self.error = error
        self.gate = gate
        self.queries: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.queries)

    async def search(self, query: str, filters: Optional[ListingFilters] = None) -> list[RawListing]:
        self.queries.append(query)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.listings)

    async def _search_api(self, query, filters):
        return []

    def _search_page_request(self, query, filters):
        return self.BASE_URL, {}

    def parse_search_page(self, html, query, filters):
        return []


@pytest.fixture
def clock() -> FakeClock:
    """Monotonic fake clock for the executor and cache."""
    return FakeClock()


@pytest.fixture
def utc_clock() -> FakeUtcClock:
    """Wall-clock fake for the listing store."""
    return FakeUtcClock()


@pytest.fixture
def no_sleep() -> RecordingSleep:
    """Sleep stand-in that records requested delays."""
    return RecordingSleep()


@pytest.fixture
def store(tmp_path: Path, utc_clock: FakeUtcClock) -> ListingStore:
    """ListingStore on a temporary database with a controllable clock."""
    return ListingStore(db_path=tmp_path / "listings.db", clock=utc_clock)


@pytest.fixture
def executor(clock: FakeClock, no_sleep: RecordingSleep) -> ResilienceExecutor:
    """Executor with a threshold of 3 and instant backoff."""
    return ResilienceExecutor(
        failure_threshold=3,
        cooldown_seconds=300,
        retry_attempts=3,
        retry_base_delay=1.0,
        clock=clock,
        sleep=no_sleep,
    )


@pytest.fixture
def make_raw() -> Callable[..., RawListing]:
    """Factory for adapter-level listings."""

    def _make(
        title: str = "Data Science Intern",
        company: str = "Acme Analytics",
        source: str = "alpha",
        **kwargs,
    ) -> RawListing:
        kwargs.setdefault("apply_url", f"https://example.com/{source}/{title.lower().replace(' ', '-')}")
        kwargs.setdefault("location", Location(city="Bengaluru", state="Karnataka"))
        return RawListing(source=source, title=title, company=company, **kwargs)

    return _make


@pytest.fixture
def make_listing() -> Callable[..., ExternalListing]:
    """Factory for stored external listings."""

    def _make(
        external_id: str = "alpha_1",
        title: str = "Finance Intern",
        company: str = "Ledger & Co",
        source: str = "alpha",
        category: str = "Finance",
        posted_days_ago: int = 0,
        stipend: int = 10000,
        **kwargs,
    ) -> ExternalListing:
        kwargs.setdefault("location", Location(city="Mumbai", state="Maharashtra"))
        kwargs.setdefault("apply_url", f"https://example.com/{external_id}")
        return ExternalListing(
            source=source,
            external_id=external_id,
            title=title,
            company=company,
            category=category,
            stipend=Stipend(amount=stipend),
            posted_date=datetime(2024, 6, 1, tzinfo=timezone.utc) - timedelta(days=posted_days_ago),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_source() -> Callable[..., FakeSource]:
    """Factory for FakeSource instances."""
    return FakeSource


@pytest.fixture
def make_aggregator(executor: ResilienceExecutor, store: ListingStore):
    """Factory wiring FakeSources into a JobAggregator."""

    def _make(sources: list[ListingSource], **kwargs) -> JobAggregator:
        kwargs.setdefault("politeness_delay", 2.0)
        kwargs.setdefault("sleep", RecordingSleep())
        return JobAggregator(sources=sources, executor=executor, store=store, **kwargs)

    return _make


@pytest.fixture
def read_fixture() -> Callable[[str], str]:
    """Read an HTML fixture from tests/fixtures."""

    def _read(name: str) -> str:
        return (FIXTURES_DIR / name).read_text(encoding="utf-8")

    return _read
