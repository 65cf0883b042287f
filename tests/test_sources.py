"""Tests for the LinkedIn, Indeed and Internshala source adapters."""

import asyncio

import httpx
import pytest

from internagg.collectors.base import (
    AuthError,
    BlockedError,
    RateLimitError,
    SourceTimeoutError,
)
from internagg.collectors.cache import ResponseCache
from internagg.collectors.indeed import IndeedSource
from internagg.collectors.internshala import InternshalaSource
from internagg.collectors.linkedin import LinkedInSource
from internagg.models.listing import ListingFilters, LocationType, StipendPeriod


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def run_search(source, query="data science", filters=None):
    return asyncio.run(source.search(query, filters))


class TestLinkedInParsing:
    """Test LinkedIn search card extraction."""

    def test_extracts_cards(self, read_fixture):
        """Valid cards become listings; a card without company is skipped."""
        source = LinkedInSource()
        listings = source.parse_search_page(
            read_fixture("linkedin_search.html"), "data science", ListingFilters()
        )

        assert len(listings) == 2
        first = listings[0]
        assert first.id == "linkedin_3812345678"
        assert first.source == "linkedin"
        assert first.title == "Data Science Intern"
        assert first.company == "Acme Analytics"
        assert first.location.city == "Bengaluru"
        assert first.location.state == "Karnataka"
        assert first.location.country == "India"
        assert first.company_logo == "https://media.licdn.com/dms/image/acme-logo.png"
        assert first.posted_date.year == 2024 and first.posted_date.month == 5

    def test_strips_tracking_params(self, read_fixture):
        """Apply URLs drop query strings so ids and links stay stable."""
        source = LinkedInSource()
        listings = source.parse_search_page(
            read_fixture("linkedin_search.html"), "data science", ListingFilters()
        )

        assert listings[0].apply_url == (
            "https://in.linkedin.com/jobs/view/data-science-intern-at-acme-analytics-3812345678"
        )
        assert listings[1].apply_url == "https://www.linkedin.com/jobs/view/frontend-intern-at-pixelworks"

    def test_card_without_urn_gets_digest_id(self, read_fixture):
        """Cards lacking a job id get a deterministic digest id."""
        html = read_fixture("linkedin_search.html")
        first = LinkedInSource().parse_search_page(html, "data science", ListingFilters())
        second = LinkedInSource().parse_search_page(html, "data science", ListingFilters())

        assert first[1].id.startswith("linkedin_")
        assert first[1].id == second[1].id
        assert first[1].location.type == LocationType.REMOTE

    def test_api_jobs_skip_malformed(self):
        """API entries missing title/company/url are skipped."""
        source = LinkedInSource()
        listings = source.parse_api_jobs([
            {
                "id": 123,
                "title": "ML Intern",
                "company": "NeuralNet",
                "location": "Hyderabad, Telangana, India",
                "url": "https://www.linkedin.com/jobs/view/123",
                "postedAt": "2024-05-30T10:00:00Z",
            },
            {"id": 124, "title": "No Company"},
        ])

        assert len(listings) == 1
        assert listings[0].id == "linkedin_123"
        assert listings[0].location.city == "Hyderabad"

    def test_location_ids(self):
        """Known countries map to geo ids; anything else defaults to India."""
        assert LinkedInSource.location_id("United States") == "103644278"
        assert LinkedInSource.location_id(None) == "102713980"
        assert LinkedInSource.location_id("Atlantis") == "102713980"


class TestIndeedParsing:
    """Test Indeed search card extraction."""

    def test_extracts_cards(self, read_fixture):
        """Cards are deduplicated by job key and title-only cards skipped."""
        source = IndeedSource()
        listings = source.parse_search_page(
            read_fixture("indeed_search.html"), "data science", ListingFilters()
        )

        assert [l.id for l in listings] == ["indeed_a1b2c3d4e5", "indeed_f6g7h8i9j0"]
        first = listings[0]
        assert first.title == "Data Science Intern"
        assert first.company == "Acme Analytics"
        assert first.description == "Build dashboards in Python and SQL."
        assert first.apply_url == "https://in.indeed.com/viewjob?jk=a1b2c3d4e5"
        assert first.stipend.amount == 15000
        assert first.stipend.currency == "INR"

    def test_remote_and_unpaid(self, read_fixture):
        """Work-from-home cards are remote; missing salary is amount 0."""
        listings = IndeedSource().parse_search_page(
            read_fixture("indeed_search.html"), "finance", ListingFilters()
        )

        second = listings[1]
        assert second.company == "Ledger & Co"
        assert second.location.type == LocationType.REMOTE
        assert second.stipend.amount == 0

    def test_api_results(self):
        """apisearch results are normalized with the job key id."""
        listings = IndeedSource().parse_api_results([
            {
                "jobkey": "k1",
                "jobtitle": "Finance Intern",
                "company": "Ledger & Co",
                "city": "Mumbai",
                "state": "MH",
                "formattedSalary": "₹12,000 a month",
            },
            {"jobtitle": "Missing Key", "company": "Nobody"},
        ])

        assert len(listings) == 1
        assert listings[0].id == "indeed_k1"
        assert listings[0].apply_url == "https://in.indeed.com/viewjob?jk=k1"
        assert listings[0].stipend.amount == 12000


class TestInternshalaParsing:
    """Test Internshala container extraction."""

    def test_extracts_containers(self, read_fixture):
        """Both id attributes are honored; containers without title are skipped."""
        listings = InternshalaSource().parse_search_page(
            read_fixture("internshala_search.html"), "data science", ListingFilters()
        )

        assert [l.id for l in listings] == ["internshala_2765431", "internshala_2765999"]
        first = listings[0]
        assert first.title == "Data Science"
        assert first.company == "DataCraft Labs"
        assert first.location.city == "Pune"
        assert first.location.state == "Maharashtra"
        assert first.duration == "3 Months"
        assert first.stipend.amount == 10000
        assert first.stipend.period == StipendPeriod.MONTH
        assert first.company_logo == "https://internshala.com/cached_uploads/logo/datacraft.png"
        assert first.apply_url.startswith("https://internshala.com/internship/detail/")

    def test_work_from_home_unpaid(self, read_fixture):
        """Work From Home is remote and Unpaid is amount 0."""
        listings = InternshalaSource().parse_search_page(
            read_fixture("internshala_search.html"), "content", ListingFilters()
        )

        second = listings[1]
        assert second.location.type == LocationType.REMOTE
        assert second.stipend.amount == 0
        assert second.apply_url == "https://internshala.com/internship/detail/content-writing-work-from-home"

    def test_search_paths(self):
        """Keyword, location and work-from-home paths are built from filters."""
        source = InternshalaSource()

        url, params = source._search_page_request("data science", ListingFilters(location="Pune"))
        assert url == "https://internshala.com/internships/keywords-data%20science/location-Pune"
        assert params == {}

        url, _ = source._search_page_request("design", ListingFilters(remote=True))
        assert url == "https://internshala.com/internships/work-from-home-internships/keywords-design"


class TestSearchFallbacks:
    """Test the API -> scrape -> synthetic fallback chain."""

    def test_api_used_when_key_configured(self):
        """With an API key the hosted API is queried and the page is not."""
        hosts = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            assert request.headers["X-RapidAPI-Key"] == "secret"
            return httpx.Response(200, json={"jobs": [{
                "id": 9,
                "title": "ML Intern",
                "company": "NeuralNet",
                "url": "https://www.linkedin.com/jobs/view/9",
            }]})

        source = LinkedInSource(api_key="secret", client=mock_client(handler))
        listings = run_search(source)

        assert [l.id for l in listings] == ["linkedin_9"]
        assert hosts == ["linkedin-jobs-search.p.rapidapi.com"]

    def test_api_failure_falls_back_to_scrape(self, read_fixture):
        """An API error falls through to the public search page."""
        html = read_fixture("linkedin_search.html")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host.endswith("rapidapi.com"):
                return httpx.Response(500)
            return httpx.Response(200, text=html)

        source = LinkedInSource(api_key="secret", client=mock_client(handler))
        listings = run_search(source)

        assert len(listings) == 2
        assert listings[0].id == "linkedin_3812345678"

    def test_empty_page_yields_synthetic_listings(self):
        """No extractable cards produces deterministic placeholder listings."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html><body>No results</body></html>")

        first = run_search(IndeedSource(client=mock_client(handler)))
        second = run_search(IndeedSource(client=mock_client(handler)))

        assert len(first) == 2
        assert all(l.source == "indeed" for l in first)
        assert first[0].title == "Data Science Intern"
        assert [l.id for l in first] == [l.id for l in second]

    def test_synthetic_listings_are_priced_in_inr(self):
        """LinkedIn placeholders carry INR amounts like the other sources."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html></html>")

        listings = run_search(LinkedInSource(client=mock_client(handler)), "marketing")

        assert listings[0].stipend.currency == "INR"
        assert listings[0].stipend.amount == 25000
        assert listings[0].apply_url == "https://www.linkedin.com/jobs"

    def test_results_are_cached(self, read_fixture, clock):
        """A repeated search within the TTL does not hit the network."""
        html = read_fixture("internshala_search.html")
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request.url)
            return httpx.Response(200, text=html)

        source = InternshalaSource(
            cache=ResponseCache(ttl_seconds=1800, clock=clock), client=mock_client(handler)
        )
        run_search(source)
        run_search(source)
        assert len(requests) == 1

        clock.advance(1801)
        run_search(source)
        assert len(requests) == 2


class TestRequestErrors:
    """Test HTTP failures are mapped to source errors."""

    def test_block_page(self):
        """A CAPTCHA interstitial raises BlockedError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text='<div id="captcha-container">Please verify</div>')

        with pytest.raises(BlockedError):
            run_search(IndeedSource(client=mock_client(handler)))

    def test_timeout(self):
        """Transport timeouts become SourceTimeoutError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(SourceTimeoutError):
            run_search(LinkedInSource(client=mock_client(handler)))

    def test_rate_limit(self):
        """HTTP 429 becomes RateLimitError with Retry-After."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "30"})

        with pytest.raises(RateLimitError) as exc_info:
            run_search(InternshalaSource(client=mock_client(handler)))
        assert exc_info.value.retry_after == 30

    def test_forbidden(self):
        """HTTP 403 becomes AuthError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403)

        with pytest.raises(AuthError) as exc_info:
            run_search(IndeedSource(client=mock_client(handler)))
        assert exc_info.value.status_code == 403
