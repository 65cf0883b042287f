"""FastAPI application for the external listings API."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .. import __version__
from ..collectors.aggregator import JobAggregator
from ..scheduler import SyncScheduler
from .routers import external

logger = logging.getLogger(__name__)


def create_app(
    aggregator: Optional[JobAggregator] = None,
    scheduler: Optional[SyncScheduler] = None,
    settings=None,
    start_scheduler: bool = True,
) -> FastAPI:
    """Build the API app.

    Components passed in are used as-is; anything missing is wired from
    settings when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup/shutdown: aggregator + sync scheduler lifecycle."""
        if app.state.aggregator is None:
            app.state.aggregator = JobAggregator.from_settings(settings)
            logger.info("External listing aggregator ready")
        if app.state.scheduler is None:
            app.state.scheduler = SyncScheduler.from_settings(app.state.aggregator, settings)
        if start_scheduler:
            await app.state.scheduler.start()

        yield

        await app.state.scheduler.stop()
        sync_task = app.state.sync_task
        if sync_task is not None and not sync_task.done():
            sync_task.cancel()
            try:
                await sync_task
            except asyncio.CancelledError:
                pass
        await app.state.aggregator.close()

    app = FastAPI(
        title="internagg API",
        description="Aggregated external internship listings",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.aggregator = aggregator
    app.state.scheduler = scheduler
    app.state.sync_task = None

    app.include_router(external.router, prefix="/api/external", tags=["External"])

    @app.get("/")
    async def root():
        """API root endpoint."""
        return {"name": "internagg API", "version": __version__, "docs": "/docs"}

    return app
