import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from devmetrics import __version__
from devmetrics.apps.api import router
from devmetrics.config.settings import get_settings
from devmetrics.dependencies import (
    close_tracking_coordinator,
    get_tracking_coordinator,
)

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    coordinator = get_tracking_coordinator(settings)
    resumed = await coordinator.resume_tracked_projects()
    if resumed:
        logger.info("Resumed tracking: %s", ", ".join(resumed))
    yield
    await close_tracking_coordinator()


app = FastAPI(
    title="DevMetrics API",
    version=__version__,
    description="Measures coding activity in tracked folders through private git snapshots",
    lifespan=lifespan,
)

app.include_router(router.router, prefix="/api")


@app.get("/health")
async def health_check():
    """
    Simple health check endpoint to confirm the API is running.
    """
    return {"status": "ok"}


def run() -> None:
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
