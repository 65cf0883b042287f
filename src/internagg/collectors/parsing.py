"""Text parsing helpers shared by the source adapters."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..models.listing import Location, LocationType, Stipend, StipendPeriod

CURRENCY_SYMBOLS = {
    "₹": "INR",
    "rs": "INR",
    "inr": "INR",
    "$": "USD",
    "usd": "USD",
    "€": "EUR",
    "eur": "EUR",
    "£": "GBP",
    "gbp": "GBP",
}

_AMOUNT_RE = re.compile(
    r"(₹|\$|€|£|rs\.?|inr|usd|eur|gbp)?\s*(\d[\d,]*(?:\.\d+)?)\s*(k)?",
    re.IGNORECASE,
)

_PERIOD_PATTERNS = [
    (re.compile(r"\b(hour|hourly)\b|(/|\bper)\s*hr\b", re.IGNORECASE), StipendPeriod.HOURLY),
    (re.compile(r"\b(week|wk|weekly)\b", re.IGNORECASE), StipendPeriod.WEEK),
    (re.compile(r"\b(year|yr|annum|annually|yearly|lpa)\b", re.IGNORECASE), StipendPeriod.YEAR),
    (re.compile(r"\b(lump\s*sum|total|one[- ]time)\b", re.IGNORECASE), StipendPeriod.TOTAL),
]


def parse_stipend(text: Optional[str], default_currency: str = "INR") -> Stipend:
    """Parse stipend text for its leading numeric amount.

    Handles forms like "₹ 10,000 /month", "₹ 8,000-12,000 /month",
    "$20 an hour" and "Unpaid". Only the first number counts, so ranges
    resolve to their lower bound. Anything without a number is amount 0.

    Args:
        text: Raw stipend or salary text from a provider
        default_currency: Currency used when the text carries no symbol

    Returns:
        Stipend with amount, currency and period
    """
    if not text:
        return Stipend(currency=default_currency)

    match = _AMOUNT_RE.search(text)
    if not match:
        return Stipend(currency=default_currency)

    symbol, number, thousands = match.groups()
    try:
        amount = float(number.replace(",", ""))
    except ValueError:
        return Stipend(currency=default_currency)
    if thousands:
        amount *= 1000

    currency = default_currency
    if symbol:
        currency = CURRENCY_SYMBOLS.get(symbol.lower().rstrip("."), default_currency)

    period = StipendPeriod.MONTH
    for pattern, candidate in _PERIOD_PATTERNS:
        if pattern.search(text):
            period = candidate
            break

    return Stipend(amount=int(amount), currency=currency, period=period)


def clean_text(value: Optional[str]) -> str:
    """Collapse whitespace runs and strip."""
    if not value:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def absolute_url(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve a possibly relative link against the provider base URL."""
    if not href:
        return None
    href = href.strip()
    if href.startswith("http"):
        return href
    if not href.startswith("/"):
        href = f"/{href}"
    return f"{base_url.rstrip('/')}{href}"


def parse_location(
    text: Optional[str],
    default_city: Optional[str] = None,
    default_country: str = "India",
) -> Location:
    """Split "City, State, Country" text into a Location.

    "Remote", "Work from home" and "Hybrid" mentions set the location type;
    missing parts fall back to the defaults.
    """
    text = clean_text(text)
    lowered = text.lower()

    if "remote" in lowered or "work from home" in lowered or "wfh" in lowered:
        location_type = LocationType.REMOTE
    elif "hybrid" in lowered:
        location_type = LocationType.HYBRID
    else:
        location_type = LocationType.ONSITE

    # Drop the "(Hybrid)"-style qualifiers before splitting
    stripped = re.sub(r"\((remote|hybrid|on-?site)\)", "", text, flags=re.IGNORECASE)
    parts = [p.strip() for p in stripped.split(",") if p.strip()]
    if location_type == LocationType.REMOTE and parts and parts[0].lower() in (
        "remote",
        "work from home",
        "wfh",
    ):
        parts = parts[1:]

    city = parts[0] if parts else default_city
    state = parts[1] if len(parts) >= 2 else None
    country = parts[-1] if len(parts) >= 3 else default_country

    return Location(city=city, state=state, country=country, type=location_type)


def parse_posted_date(value: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse an ISO timestamp or a relative phrase like "3 days ago".

    Returns None when the value is missing or unrecognized.
    """
    if not value:
        return None
    now = now or datetime.now(timezone.utc)
    text = value.strip()

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    lowered = text.lower()
    if lowered in ("today", "just now", "just posted"):
        return now
    if lowered == "yesterday":
        return now - timedelta(days=1)

    match = re.search(r"(\d+)\+?\s*(minute|hour|day|week|month)s?\s+ago", lowered)
    if not match:
        return None
    count = int(match.group(1))
    unit = match.group(2)
    deltas = {
        "minute": timedelta(minutes=count),
        "hour": timedelta(hours=count),
        "day": timedelta(days=count),
        "week": timedelta(weeks=count),
        "month": timedelta(days=30 * count),
    }
    return now - deltas[unit]
