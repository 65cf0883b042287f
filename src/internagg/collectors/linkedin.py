"""LinkedIn internship listing source.

Uses the RapidAPI "linkedin-jobs-search" endpoint when a key is configured,
and otherwise the public (guest) job search page, which renders result cards
server-side as ``.base-search-card`` elements.
"""

import logging
import re
from typing import Optional

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ValidationError

from ..models.listing import ListingFilters, Location, RawListing, utcnow
from .base import ListingSource
from .parsing import absolute_url, clean_text, parse_location, parse_posted_date

logger = logging.getLogger(__name__)

# LinkedIn geo ids used by the API's locationId parameter
LOCATION_IDS = {
    "india": "102713980",
    "united states": "103644278",
    "usa": "103644278",
    "united kingdom": "101165590",
    "uk": "101165590",
    "canada": "101174742",
    "australia": "101452733",
    "singapore": "102454443",
    "germany": "101282230",
}
DEFAULT_LOCATION_ID = LOCATION_IDS["india"]


class LinkedInApiJob(BaseModel):
    """One job as returned by the RapidAPI endpoint."""

    id: str | int | None = None
    title: str | None = None
    company: str | None = None
    companyLogo: str | None = None
    description: str | None = None
    location: str | None = None
    url: str | None = None
    postedAt: str | None = None


class LinkedInCard(BaseModel):
    """Fields extracted from one search result card."""

    job_id: str | None = None
    title: str | None = None
    company: str | None = None
    location: str | None = None
    link: str | None = None
    logo: str | None = None
    posted: str | None = None


class LinkedInSource(ListingSource):
    """LinkedIn job search adapter.

    Attributes:
        name: "linkedin"
        priority: 1
    """

    name = "linkedin"
    priority = 1

    BASE_URL = "https://www.linkedin.com"
    SEARCH_PATH = "/jobs/search/"
    API_URL = "https://linkedin-jobs-search.p.rapidapi.com/jobs"
    API_HOST = "linkedin-jobs-search.p.rapidapi.com"

    FALLBACK_POSTINGS = (
        (
            "{query} Internship",
            "Tech Innovators",
            "Exciting {query} internship opportunity with growth potential",
            "Bangalore",
            "3-6 months",
            25000,
        ),
        (
            "Junior {query} Developer",
            "Digital Solutions",
            "Learn {query} development with industry mentors",
            "Mumbai",
            "4-6 months",
            30000,
        ),
    )

    @property
    def fallback_url(self) -> str:
        return f"{self.BASE_URL}/jobs"

    @staticmethod
    def location_id(location: Optional[str]) -> str:
        """Map a free-text location to a LinkedIn geo id (India by default)."""
        if not location:
            return DEFAULT_LOCATION_ID
        return LOCATION_IDS.get(location.strip().lower(), DEFAULT_LOCATION_ID)

    async def _search_api(self, query: str, filters: ListingFilters) -> list[RawListing]:
        response = await self._request(
            self.API_URL,
            params={
                "keywords": f"{query} internship",
                "locationId": self.location_id(filters.location),
                "dateSincePosted": "past-week",
                "jobType": "I",
                "sort": "mostRecent",
            },
            headers={"X-RapidAPI-Key": self.api_key or "", "X-RapidAPI-Host": self.API_HOST},
        )
        payload = response.json()
        jobs = payload.get("jobs") if isinstance(payload, dict) else None
        return self.parse_api_jobs(jobs or [])

    def parse_api_jobs(self, jobs: list[dict]) -> list[RawListing]:
        """Normalize RapidAPI job dicts, skipping malformed entries."""
        listings = []
        for raw in jobs:
            try:
                job = LinkedInApiJob.model_validate(raw)
                if not (job.title and job.company and job.url):
                    continue
                location = parse_location(job.location, default_country="Global")
                listings.append(
                    RawListing(
                        source=self.name,
                        id=f"linkedin_{job.id}" if job.id is not None else None,
                        title=job.title,
                        company=job.company,
                        company_logo=job.companyLogo,
                        description=job.description or "",
                        location=location,
                        apply_url=job.url,
                        posted_date=parse_posted_date(job.postedAt) or utcnow(),
                    )
                )
            except (ValidationError, ValueError, TypeError) as e:
                logger.debug(f"Skipping malformed LinkedIn API job: {e}")
        return listings

    def _search_page_request(
        self, query: str, filters: ListingFilters
    ) -> tuple[str, dict[str, str]]:
        params = {"keywords": f"{query} internship", "f_E": "1"}
        if filters.location:
            params["location"] = filters.location
        if filters.remote:
            params["f_WT"] = "2"
        return f"{self.BASE_URL}{self.SEARCH_PATH}", params

    def _parse_card(self, card: Tag) -> Optional[LinkedInCard]:
        urn = card.get("data-entity-urn") or ""
        if not urn:
            inner = card.find(attrs={"data-entity-urn": True})
            urn = inner.get("data-entity-urn", "") if inner else ""
        id_match = re.search(r"(\d{6,})", urn)

        title_elem = card.select_one(".base-search-card__title")
        company_elem = card.select_one(".base-search-card__subtitle")
        location_elem = card.select_one(".job-search-card__location")
        link_elem = card.select_one("a.base-card__full-link") or card.find("a", href=True)
        logo_elem = card.select_one("img.artdeco-entity-image") or card.find("img")
        time_elem = card.find("time")

        return LinkedInCard(
            job_id=id_match.group(1) if id_match else None,
            title=clean_text(title_elem.get_text()) if title_elem else None,
            company=clean_text(company_elem.get_text()) if company_elem else None,
            location=clean_text(location_elem.get_text()) if location_elem else None,
            link=link_elem.get("href") if link_elem else None,
            logo=(logo_elem.get("data-delayed-url") or logo_elem.get("src")) if logo_elem else None,
            posted=(time_elem.get("datetime") or time_elem.get_text()) if time_elem else None,
        )

    def parse_search_page(
        self, html: str, query: str, filters: ListingFilters
    ) -> list[RawListing]:
        soup = BeautifulSoup(html, "html.parser")
        cards = soup.select(".job-search-card") or soup.select(".base-search-card")

        listings = []
        seen = set()
        for card in cards:
            try:
                parsed = self._parse_card(card)
                if not parsed or not (parsed.title and parsed.company):
                    continue

                # Tracking params change on every page load; drop them
                link = absolute_url(parsed.link, self.BASE_URL)
                link = link.split("?")[0] if link else self.fallback_url

                listing_id = (
                    f"linkedin_{parsed.job_id}"
                    if parsed.job_id
                    else self.listing_id(parsed.title, parsed.company, link)
                )
                if listing_id in seen:
                    continue
                seen.add(listing_id)

                location = (
                    parse_location(parsed.location, default_country="Global")
                    if parsed.location
                    else Location(city=filters.location or "Remote", country="Global")
                )
                listings.append(
                    RawListing(
                        source=self.name,
                        id=listing_id,
                        title=parsed.title,
                        company=parsed.company,
                        company_logo=parsed.logo,
                        description=f"{parsed.title} position at {parsed.company}",
                        location=location,
                        apply_url=link,
                        posted_date=parse_posted_date(parsed.posted) or utcnow(),
                    )
                )
            except (ValidationError, ValueError, AttributeError) as e:
                logger.debug(f"Skipping malformed LinkedIn card: {e}")
        return listings
