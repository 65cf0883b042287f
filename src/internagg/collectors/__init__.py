"""External internship listing collection framework.

This module provides a unified interface for collecting listings from
multiple providers (LinkedIn, Indeed, Internshala) through a plugin
architecture, with retries and circuit breaking around every call.

Main Components:
    - ListingSource: Abstract base class for all listing sources
    - ResilienceExecutor: Retry-with-backoff plus per-source circuit breaker
    - JobAggregator: Orchestrator that runs queries across every source
    - ResponseCache: Short-TTL cache of provider responses

Example usage:
    from internagg.collectors import JobAggregator

    aggregator = JobAggregator.from_settings()
    result = await aggregator.sync_all_platforms(["data science"])
    print(result.stats.by_source)
"""

from .aggregator import JobAggregator, external_id_for
from .base import (
    AuthError,
    BlockedError,
    CircuitOpenError,
    ErrorKind,
    ListingSource,
    RateLimitError,
    SourceError,
    SourceNetworkError,
    SourceTimeoutError,
    classify_error,
)
from .cache import ResponseCache
from .indeed import IndeedSource
from .internshala import InternshalaSource
from .linkedin import LinkedInSource
from .resilience import CircuitState, ResilienceExecutor

__all__ = [
    "AuthError",
    "BlockedError",
    "CircuitOpenError",
    "CircuitState",
    "ErrorKind",
    "IndeedSource",
    "InternshalaSource",
    "JobAggregator",
    "LinkedInSource",
    "ListingSource",
    "RateLimitError",
    "ResilienceExecutor",
    "ResponseCache",
    "SourceError",
    "SourceNetworkError",
    "SourceTimeoutError",
    "classify_error",
    "external_id_for",
]
