"""Aggregation run bookkeeping models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .listing import utcnow


class SyncError(BaseModel):
    """One failure recorded during a run.

    Query-level failures carry ``source``/``query``; item-level failures also
    carry the listing ``title``.
    """

    source: str | None = None
    query: str | None = None
    title: str | None = None
    kind: str = "generic"
    error: str


class SyncRun(BaseModel):
    """Statistics for a single orchestrator execution."""

    total_synced: int = 0
    by_source: dict[str, int] = Field(default_factory=dict)
    errors: list[SyncError] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utcnow)
    end_time: datetime | None = None
    duration_seconds: float | None = None
    in_progress: bool = True

    def record_success(self, source: str) -> None:
        self.total_synced += 1
        self.by_source[source] = self.by_source.get(source, 0) + 1

    def record_error(self, **fields: Any) -> None:
        self.errors.append(SyncError(**fields))

    def finish(self) -> None:
        self.end_time = utcnow()
        self.duration_seconds = round((self.end_time - self.start_time).total_seconds(), 1)
        self.in_progress = False


class SyncResult(BaseModel):
    """Outcome of a sync request."""

    success: bool
    message: str | None = None
    already_running: bool = False
    stats: SyncRun | None = None
