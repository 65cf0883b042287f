"""Internshala internship listing source.

Internshala lists internships under keyword/location path segments, e.g.
``/internships/keywords-data%20science/location-pune``. Each result is an
``.individual_internship`` container with the internship id attribute.
"""

import logging
from typing import Optional
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ValidationError

from ..models.listing import ListingFilters, Location, RawListing, utcnow
from .base import ListingSource
from .parsing import absolute_url, clean_text, parse_location, parse_posted_date, parse_stipend

logger = logging.getLogger(__name__)


class InternshalaApiInternship(BaseModel):
    """One internship as returned by the RapidAPI endpoint."""

    id: str | int | None = None
    title: str | None = None
    company: str | None = None
    description: str | None = None
    location: str | None = None
    duration: str | None = None
    stipend: str | None = None
    url: str | None = None
    postedDate: str | None = None


class InternshalaCard(BaseModel):
    """Fields extracted from one ``.individual_internship`` container."""

    internship_id: str | None = None
    title: str | None = None
    company: str | None = None
    location: str | None = None
    duration: str | None = None
    stipend: str | None = None
    link: str | None = None
    logo: str | None = None
    posted: str | None = None


def _text(container: Tag, *selectors: str) -> Optional[str]:
    for selector in selectors:
        elem = container.select_one(selector)
        if elem:
            text = clean_text(elem.get_text(" "))
            if text:
                return text
    return None


class InternshalaSource(ListingSource):
    """Internshala search adapter.

    Attributes:
        name: "internshala"
        priority: 3
    """

    name = "internshala"
    priority = 3

    BASE_URL = "https://internshala.com"
    API_URL = "https://internshala-api.p.rapidapi.com/search"
    API_HOST = "internshala-api.p.rapidapi.com"

    FALLBACK_POSTINGS = (
        (
            "{query} Intern",
            "StartupXYZ",
            "Hands-on {query} internship with real projects",
            "Pune",
            "2-6 months",
            12000,
        ),
        (
            "{query} Development Trainee",
            "TechStart India",
            "Learn {query} development from industry experts",
            "Chennai",
            "3-4 months",
            18000,
        ),
    )

    @property
    def fallback_url(self) -> str:
        return f"{self.BASE_URL}/internships"

    async def _search_api(self, query: str, filters: ListingFilters) -> list[RawListing]:
        response = await self._request(
            self.API_URL,
            params={
                "query": f"{query} internship",
                "location": filters.location or "India",
                "category": filters.category or "",
                "type": "internship",
            },
            headers={"X-RapidAPI-Key": self.api_key or "", "X-RapidAPI-Host": self.API_HOST},
        )
        payload = response.json()
        internships = payload.get("internships") if isinstance(payload, dict) else None
        return self.parse_api_internships(internships or [])

    def parse_api_internships(self, internships: list[dict]) -> list[RawListing]:
        """Normalize RapidAPI internship dicts, skipping malformed entries."""
        listings = []
        for raw in internships:
            try:
                item = InternshalaApiInternship.model_validate(raw)
                if not (item.title and item.company and item.url):
                    continue
                listings.append(
                    RawListing(
                        source=self.name,
                        id=f"internshala_{item.id}" if item.id is not None else None,
                        title=item.title,
                        company=item.company,
                        description=item.description or "",
                        location=parse_location(item.location),
                        duration=item.duration,
                        stipend=parse_stipend(item.stipend),
                        apply_url=absolute_url(item.url, self.BASE_URL),
                        posted_date=parse_posted_date(item.postedDate) or utcnow(),
                    )
                )
            except (ValidationError, ValueError, TypeError) as e:
                logger.debug(f"Skipping malformed Internshala API internship: {e}")
        return listings

    def _search_page_request(
        self, query: str, filters: ListingFilters
    ) -> tuple[str, dict[str, str]]:
        path = f"/internships/keywords-{quote(query)}"
        if filters.remote:
            path = f"/internships/work-from-home-internships/keywords-{quote(query)}"
        elif filters.location:
            path += f"/location-{quote(filters.location)}"
        return f"{self.BASE_URL}{path}", {}

    def _parse_container(self, container: Tag) -> InternshalaCard:
        link_elem = (
            container.select_one("a.view_detail_button")
            or container.select_one("a.job-title-href")
            or container.select_one(".profile h3 a")
        )
        link = link_elem.get("href") if link_elem else container.get("data-href")
        logo_elem = container.select_one(".internship_logo img")

        return InternshalaCard(
            internship_id=container.get("internshipid") or container.get("data-internship_id"),
            title=_text(container, ".job-internship-name", ".profile h3 a", ".profile"),
            company=_text(container, ".company-name", ".company h4 a", ".company_name"),
            location=_text(container, ".locations", ".location_link", ".individual_internship_locations"),
            duration=_text(container, ".duration", ".item_body.duration"),
            stipend=_text(container, ".stipend"),
            link=link,
            logo=logo_elem.get("src") if logo_elem else None,
            posted=_text(container, ".status-inactive", ".status-success", ".posted_by_container"),
        )

    def parse_search_page(
        self, html: str, query: str, filters: ListingFilters
    ) -> list[RawListing]:
        soup = BeautifulSoup(html, "html.parser")

        listings = []
        seen = set()
        for container in soup.select(".individual_internship"):
            try:
                parsed = self._parse_container(container)
                if not (parsed.title and parsed.company):
                    continue

                link = absolute_url(parsed.link, self.BASE_URL) or self.fallback_url
                listing_id = (
                    f"internshala_{parsed.internship_id}"
                    if parsed.internship_id
                    else self.listing_id(parsed.title, parsed.company, link)
                )
                if listing_id in seen:
                    continue
                seen.add(listing_id)

                listings.append(
                    RawListing(
                        source=self.name,
                        id=listing_id,
                        title=parsed.title,
                        company=parsed.company,
                        company_logo=absolute_url(parsed.logo, self.BASE_URL),
                        description=f"{parsed.title} internship at {parsed.company}",
                        location=(
                            parse_location(parsed.location)
                            if parsed.location
                            else Location(city=filters.location or "India")
                        ),
                        duration=parsed.duration,
                        stipend=parse_stipend(parsed.stipend),
                        apply_url=link,
                        posted_date=parse_posted_date(parsed.posted) or utcnow(),
                    )
                )
            except (ValidationError, ValueError, AttributeError) as e:
                logger.debug(f"Skipping malformed Internshala container: {e}")
        return listings
