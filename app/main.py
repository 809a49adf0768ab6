"""
Main FastAPI application.

This is the entry point for the API server.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.config import settings
from app.errors import register_error_handlers
from app.routers import admin, analysis, batch, clear_stuck, health, queue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for the FastAPI app.
    
    - On startup: configure logging and, if enabled, start an in-process worker.
    - On shutdown: stop the worker and wait for its current job to finish.
    """
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting %s...", settings.APP_NAME)

    runner = None
    worker_task = None
    if settings.RUN_WORKER_IN_PROCESS:
        from app.workers.analysis_worker import AnalysisJobRunner

        runner = AnalysisJobRunner()
        worker_task = asyncio.create_task(runner.run_forever())
        logger.info("In-process analysis worker %s started", runner.worker_id)

    yield

    if runner and worker_task:
        runner.request_stop()
        await worker_task
    logger.info("Shutting down %s...", settings.APP_NAME)


# Create the FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Contract analysis job queue API",
    version="0.1.0",
    lifespan=lifespan,
)

register_error_handlers(app)

# Static /analysis/* paths must be registered before /analysis/{analysis_id}
app.include_router(health.router, tags=["Health"])
app.include_router(queue.router)
app.include_router(batch.router)
app.include_router(clear_stuck.router)
app.include_router(analysis.router)
app.include_router(admin.router)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint - basic info about the API."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "docs": "/docs",
        "health": "/health",
    }
