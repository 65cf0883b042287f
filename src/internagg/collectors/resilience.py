"""Retry-with-backoff and per-source circuit breaking for outbound calls.

Every adapter call made by the aggregator goes through
``ResilienceExecutor.execute``. The executor owns the per-source circuit
state; nothing else mutates it, and one instance is shared per process.

State machine per source:

    closed --(failures >= threshold)--> open
    open --(cool-down elapsed)--> half-open (one probe, no retries)
    half-open --(probe succeeds)--> closed
    half-open --(probe fails)--> open
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

from .base import CircuitOpenError, ErrorKind, SourceTimeoutError, classify_error

logger = logging.getLogger(__name__)


@dataclass
class CircuitState:
    """Failure bookkeeping for one source, created on its first failure."""

    failure_count: int = 0
    is_open: bool = False
    open_until: float = 0.0
    probe_in_flight: bool = False

    def is_short_circuiting(self, now: float) -> bool:
        """True while calls must be skipped (open and cooling down)."""
        return self.is_open and now < self.open_until

    def phase(self, now: float) -> str:
        """Return closed, open or half_open (cool-down over, awaiting a probe)."""
        if not self.is_open:
            return "closed"
        return "open" if self.is_short_circuiting(now) else "half_open"


class ResilienceExecutor:
    """Runs source operations with bounded retries and a circuit breaker.

    Example:
        executor = ResilienceExecutor(failure_threshold=5, cooldown_seconds=300)
        listings = await executor.execute(
            lambda: source.search("data science"), source.name
        )
        executor.health(["linkedin"])
        # {"linkedin": {"status": "up", "failure_count": 0, "circuit_open": False}}
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 300.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        rate_limit_weight: int = 2,
        attempt_timeout: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """Initialize the executor.

        Args:
            failure_threshold: Consecutive failures that open a circuit (default 5)
            cooldown_seconds: How long an open circuit skips calls (default 300)
            retry_attempts: Attempts per call when the circuit is closed (default 3)
            retry_base_delay: Wait before the first retry, doubled each retry
            rate_limit_weight: Failures a rate-limit error counts as (default 2)
            attempt_timeout: Optional timeout applied to each attempt
            clock: Monotonic clock in seconds, injectable for tests
            sleep: Coroutine used for backoff waits, injectable for tests
        """
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.retry_attempts = max(1, retry_attempts)
        self.retry_base_delay = retry_base_delay
        self.rate_limit_weight = rate_limit_weight
        self.attempt_timeout = attempt_timeout
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._circuits: dict[str, CircuitState] = {}

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "ResilienceExecutor":
        """Build an executor from a Settings object."""
        return cls(
            failure_threshold=settings.failure_threshold,
            cooldown_seconds=settings.cooldown_seconds,
            retry_attempts=settings.retry_attempts,
            retry_base_delay=settings.retry_base_delay,
            rate_limit_weight=settings.rate_limit_weight,
            attempt_timeout=settings.attempt_timeout,
            **kwargs,
        )

    async def execute(self, operation: Callable[[], Awaitable[Any]], source_name: str) -> Any:
        """Run operation for source_name under retry and circuit breaking.

        Args:
            operation: Zero-argument callable returning an awaitable
            source_name: Source the circuit state is tracked under

        Returns:
            Whatever the operation returns

        Raises:
            CircuitOpenError: If the circuit is open; the operation is not called
            Exception: The last failure once attempts are exhausted or the
                circuit opens mid-call
        """
        state = self._circuits.get(source_name)
        now = self._clock()
        probing = False

        if state is not None and state.is_open:
            if state.is_short_circuiting(now):
                logger.info(f"Circuit breaker open for {source_name}, skipping call")
                raise CircuitOpenError(source_name, state.open_until - now)
            if state.probe_in_flight:
                raise CircuitOpenError(source_name, 0)
            probing = True
            state.probe_in_flight = True
            logger.info(f"Circuit half-open for {source_name}, sending probe call")

        attempts = 1 if probing else self.retry_attempts
        try:
            for attempt in range(1, attempts + 1):
                try:
                    result = await self._attempt(operation, source_name)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    kind = classify_error(e)
                    self._log_failure(source_name, attempt, attempts, kind, e)
                    opened = self._record_failure(source_name, kind, force_open=probing)
                    if opened or attempt == attempts:
                        raise
                    await self._sleep(self.retry_base_delay * (2 ** (attempt - 1)))
                else:
                    self._record_success(source_name)
                    return result
        finally:
            if probing:
                state.probe_in_flight = False

    async def _attempt(self, operation: Callable[[], Awaitable[Any]], source_name: str) -> Any:
        if not self.attempt_timeout:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=self.attempt_timeout)
        except asyncio.TimeoutError as e:
            raise SourceTimeoutError(
                source_name, f"No response within {self.attempt_timeout:g}s"
            ) from e

    def _record_failure(self, source_name: str, kind: ErrorKind, force_open: bool = False) -> bool:
        """Count a failed attempt; return True if the circuit (re)opened."""
        state = self._circuits.setdefault(source_name, CircuitState())
        state.failure_count += self.rate_limit_weight if kind == ErrorKind.RATE_LIMIT else 1

        if force_open or state.failure_count >= self.failure_threshold:
            state.is_open = True
            state.open_until = self._clock() + self.cooldown_seconds
            logger.warning(
                f"Circuit breaker opened for {source_name} "
                f"({state.failure_count} failures, cool-down {self.cooldown_seconds:.0f}s)"
            )
            return True
        return False

    def _record_success(self, source_name: str) -> None:
        state = self._circuits.pop(source_name, None)
        if state is not None and state.is_open:
            logger.info(f"Circuit breaker closed for {source_name} after successful probe")

    def _log_failure(
        self, source_name: str, attempt: int, attempts: int, kind: ErrorKind, error: Exception
    ) -> None:
        prefix = f"{source_name} attempt {attempt}/{attempts} failed"
        if kind in (ErrorKind.NETWORK, ErrorKind.TIMEOUT):
            logger.warning(f"{prefix} - network error ({kind.value}): {error}")
        elif kind == ErrorKind.RATE_LIMIT:
            logger.warning(f"{prefix} - rate limit exceeded: {error}")
        elif kind == ErrorKind.AUTH:
            logger.error(f"{prefix} - authentication error, retry unlikely to help: {error}")
        else:
            logger.warning(f"{prefix} - {kind.value} error: {error}")

    def get_state(self, source_name: str) -> Optional[CircuitState]:
        """Circuit state for a source, or None if it has not failed."""
        return self._circuits.get(source_name)

    def reset(self, source_name: Optional[str] = None) -> None:
        """Forget failure state for one source, or for all of them."""
        if source_name is None:
            self._circuits.clear()
        else:
            self._circuits.pop(source_name, None)

    def health(self, sources: Optional[Iterable[str]] = None) -> dict[str, dict[str, Any]]:
        """Per-source health summary.

        Args:
            sources: Source names to report; defaults to every tracked source

        Returns:
            {source: {"status": "up"|"down", "failure_count": int, "circuit_open": bool}}
        """
        now = self._clock()
        names = list(sources) if sources is not None else list(self._circuits)
        health = {}
        for name in names:
            state = self._circuits.get(name)
            circuit_open = bool(state and state.is_short_circuiting(now))
            health[name] = {
                "status": "down" if circuit_open else "up",
                "failure_count": state.failure_count if state else 0,
                "circuit_open": circuit_open,
            }
        return health
