"""Indeed India internship listing source.

Uses the RapidAPI Indeed ``apisearch`` endpoint when a key is configured,
and otherwise the public search page at in.indeed.com, where each result
card carries its job key in a ``data-jk`` attribute.
"""

import logging
from typing import Optional

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ValidationError

from ..models.listing import ListingFilters, Location, RawListing, utcnow
from .base import ListingSource
from .parsing import clean_text, parse_location, parse_posted_date, parse_stipend

logger = logging.getLogger(__name__)


class IndeedApiResult(BaseModel):
    """One result of the RapidAPI apisearch endpoint."""

    jobkey: str | None = None
    jobtitle: str | None = None
    company: str | None = None
    snippet: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    formattedSalary: str | None = None
    url: str | None = None
    date: str | None = None


class IndeedCard(BaseModel):
    """Fields extracted from one search result card."""

    job_key: str
    title: str | None = None
    company: str | None = None
    location: str | None = None
    snippet: str | None = None
    salary: str | None = None
    posted: str | None = None


def _first_text(card: Tag, *selectors: str) -> Optional[str]:
    """Text of the first selector that matches with non-empty content."""
    for selector in selectors:
        elem = card.select_one(selector)
        if elem:
            text = clean_text(elem.get_text(" "))
            if text:
                return text
    return None


class IndeedSource(ListingSource):
    """Indeed job search adapter.

    Attributes:
        name: "indeed"
        priority: 2
    """

    name = "indeed"
    priority = 2

    BASE_URL = "https://in.indeed.com"
    API_HOST = "indeed-indeed.p.rapidapi.com"

    FALLBACK_POSTINGS = (
        (
            "{query} Intern",
            "Tech Solutions India",
            "Exciting {query} internship with hands-on learning",
            "Delhi",
            "3-6 months",
            15000,
        ),
        (
            "{query} Development Trainee",
            "Innovation Hub",
            "Learn {query} development with mentorship",
            "Bangalore",
            "4-6 months",
            20000,
        ),
    )

    @property
    def fallback_url(self) -> str:
        return f"{self.BASE_URL}/jobs"

    async def _search_api(self, query: str, filters: ListingFilters) -> list[RawListing]:
        response = await self._request(
            f"https://{self.API_HOST}/apisearch",
            params={
                "v": "2",
                "format": "json",
                "q": f"{query} internship",
                "l": filters.location or "India",
                "radius": "25",
                "jt": "internship",
                "start": "0",
                "limit": "25",
                "fromage": "7",
                "filter": "1",
                "co": "in",
            },
            headers={"X-RapidAPI-Key": self.api_key or "", "X-RapidAPI-Host": self.API_HOST},
        )
        payload = response.json()
        results = payload.get("results") if isinstance(payload, dict) else None
        return self.parse_api_results(results or [])

    def parse_api_results(self, results: list[dict]) -> list[RawListing]:
        """Normalize apisearch results, skipping malformed entries."""
        listings = []
        for raw in results:
            try:
                result = IndeedApiResult.model_validate(raw)
                if not (result.jobtitle and result.company and result.jobkey):
                    continue
                listings.append(
                    RawListing(
                        source=self.name,
                        id=f"indeed_{result.jobkey}",
                        title=result.jobtitle,
                        company=result.company,
                        description=clean_text(result.snippet),
                        location=Location(
                            city=result.city,
                            state=result.state,
                            country=result.country or "India",
                        ),
                        stipend=parse_stipend(result.formattedSalary),
                        apply_url=result.url or f"{self.BASE_URL}/viewjob?jk={result.jobkey}",
                        posted_date=parse_posted_date(result.date) or utcnow(),
                    )
                )
            except (ValidationError, ValueError, TypeError) as e:
                logger.debug(f"Skipping malformed Indeed API result: {e}")
        return listings

    def _search_page_request(
        self, query: str, filters: ListingFilters
    ) -> tuple[str, dict[str, str]]:
        params = {"q": f"{query} internship", "jt": "internship"}
        if filters.location:
            params["l"] = filters.location
        return f"{self.BASE_URL}/jobs", params

    def _parse_card(self, card: Tag) -> IndeedCard:
        return IndeedCard(
            job_key=card.get("data-jk", ""),
            title=_first_text(card, '[data-testid="job-title"]', "h2.jobTitle span", ".jobTitle a span"),
            company=_first_text(card, '[data-testid="company-name"]', ".companyName"),
            location=_first_text(
                card, '[data-testid="text-location"]', '[data-testid="job-location"]', ".companyLocation"
            ),
            snippet=_first_text(card, '[data-testid="job-snippet"]', ".job-snippet", ".summary"),
            salary=_first_text(card, ".salary-snippet", '[data-testid="attribute_snippet_testid"]'),
            posted=_first_text(card, '[data-testid="myJobsStateDate"]', ".date"),
        )

    def parse_search_page(
        self, html: str, query: str, filters: ListingFilters
    ) -> list[RawListing]:
        soup = BeautifulSoup(html, "html.parser")

        listings = []
        seen = set()
        for card in soup.select("[data-jk]"):
            try:
                parsed = self._parse_card(card)
                # The title anchor repeats data-jk inside the card; first hit wins
                if not parsed.job_key or parsed.job_key in seen:
                    continue
                if not (parsed.title and parsed.company):
                    # Anchor-only match; the enclosing card may still follow
                    continue
                seen.add(parsed.job_key)

                listings.append(
                    RawListing(
                        source=self.name,
                        id=f"indeed_{parsed.job_key}",
                        title=parsed.title,
                        company=parsed.company,
                        description=parsed.snippet or f"{parsed.title} position at {parsed.company}",
                        location=(
                            parse_location(parsed.location)
                            if parsed.location
                            else Location(city=filters.location or "India")
                        ),
                        stipend=parse_stipend(parsed.salary),
                        apply_url=f"{self.BASE_URL}/viewjob?jk={parsed.job_key}",
                        posted_date=parse_posted_date(parsed.posted) or utcnow(),
                    )
                )
            except (ValidationError, ValueError, AttributeError) as e:
                logger.debug(f"Skipping malformed Indeed card: {e}")
        return listings
