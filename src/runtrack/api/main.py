"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlmodel import SQLModel

from runtrack.api.routes import runs, session as session_routes
from runtrack.db.engine import get_engine
from runtrack.services import build_tracker

logger = logging.getLogger(__name__)


def create_app(tracker=None, start_scheduler: bool = True, engine=None) -> FastAPI:
    """
    Build and return the FastAPI app.

    Args:
        tracker: RunTracker to expose; defaults to one backed by get_engine().
        start_scheduler: run the journal/live-publish jobs while serving.
        engine: database engine; defaults to get_engine().
    """
    if engine is None:
        engine = get_engine()
    if tracker is None:
        tracker = build_tracker(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (idempotent)
        SQLModel.metadata.create_all(engine)
        recovered = tracker.recover()
        if recovered:
            logger.info("Recovered run %s on startup", recovered.session_id)

        scheduler = None
        if start_scheduler:
            from runtrack.scheduler.jobs import build_scheduler
            scheduler = build_scheduler(tracker)
            scheduler.start()
        yield
        if scheduler is not None:
            scheduler.shutdown()

    app = FastAPI(
        title="Runtrack API",
        description="Live running-session tracking engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.tracker = tracker
    app.state.engine = engine

    app.include_router(session_routes.router, prefix="/session", tags=["session"])
    app.include_router(runs.router, prefix="/runs", tags=["runs"])

    return app


# Module-level app instance for uvicorn
app = create_app()
