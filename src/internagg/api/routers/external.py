"""External listing read and sync control endpoints."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from ...collectors.aggregator import JobAggregator
from ...models.listing import ListingFilters, utcnow

router = APIRouter()
logger = logging.getLogger(__name__)


class SyncRequest(BaseModel):
    """Optional body for a manual sync."""

    queries: list[str] | None = None


def _get_aggregator(request: Request) -> JobAggregator:
    aggregator = request.app.state.aggregator
    if aggregator is None:
        raise HTTPException(503, "Aggregator not available")
    return aggregator


@router.get("/jobs")
async def list_external_jobs(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    source: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    location: Optional[str] = Query(default=None),
    remote: bool = Query(default=False),
) -> dict:
    """Stored external listings, newest first."""
    aggregator = _get_aggregator(request)
    filters = ListingFilters(
        source=source, category=category, search=search, location=location, remote=remote
    )
    try:
        result = aggregator.get_external_jobs(filters, page=page, limit=limit)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to query listings: {str(e)}")

    return {
        "success": True,
        "count": len(result.data),
        **result.model_dump(mode="json"),
    }


@router.get("/stats")
async def external_stats(request: Request) -> dict:
    """Return per-source listing counts and average stipend."""
    aggregator = _get_aggregator(request)
    try:
        return aggregator.get_stats()
    except Exception as e:
        raise HTTPException(500, f"Failed to get stats: {e}")


@router.get("/status")
async def sync_status(request: Request):
    """Return run state, last run summary, source health and schedule."""
    scheduler = request.app.state.scheduler
    if scheduler is not None:
        return scheduler.get_status()

    status = _get_aggregator(request).get_status()
    status["enabled"] = False
    status["next_run_at"] = None
    return status


@router.get("/health")
async def sources_health(request: Request):
    """Per-source health as seen by the circuit breaker."""
    aggregator = _get_aggregator(request)
    return {
        "timestamp": utcnow(),
        "api_health": aggregator.get_status()["api_health"],
    }


@router.get("/search")
async def search_external(
    request: Request,
    q: str = Query(default="internship"),
    platform: str = Query(default="all"),
    location: Optional[str] = Query(default=None),
    remote: bool = Query(default=False),
) -> dict:
    """Search the providers live; results are not stored."""
    aggregator = _get_aggregator(request)
    platforms = ["all"] + [s.name for s in aggregator.sources]
    if platform not in platforms:
        raise HTTPException(400, f"platform must be one of: {', '.join(platforms)}")

    filters = ListingFilters(location=location, remote=remote)
    results = await aggregator.search_external(q, platform=platform, filters=filters)
    return {
        "success": True,
        "count": len(results),
        "data": [listing.model_dump(mode="json") for listing in results],
        "platform": platform,
        "api_health": aggregator.get_status()["api_health"],
    }


def _log_sync_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("Manual sync cancelled")
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Manual sync failed: {error}")


@router.post("/sync", status_code=202)
async def trigger_sync(request: Request, body: Optional[SyncRequest] = None) -> dict:
    """Manually trigger a full sync in the background."""
    aggregator = _get_aggregator(request)
    pending = request.app.state.sync_task
    # A task created but not yet started has not claimed the run guard
    if aggregator.is_running or (pending is not None and not pending.done()):
        raise HTTPException(409, "Sync already in progress")

    queries = body.queries if body else None
    task = asyncio.create_task(aggregator.sync_all_platforms(queries))
    task.add_done_callback(_log_sync_outcome)
    request.app.state.sync_task = task
    logger.info("Manual sync triggered")
    return {"status": "triggered", "message": "Sync started"}
