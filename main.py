"""Sleep Debt API entry point.

Config is validated when shared.config is imported, so a bad time zone or a
live source without credentials stops the process before it serves anything.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from debt.api import router as debt_router
from shared.config import settings
from shared.database import engine
from shared.logging import configure_logging
from shared.metrics import create_metrics_app
from shared.middleware import RequestIdMiddleware, install_problem_handlers

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(json_output=settings.json_logs)
    logger.info(
        "sleep_debt_api_starting",
        source_mode=settings.source_mode,
        time_zone=settings.time_zone,
        lookback_days=settings.rebuild_lookback_days,
        database=settings.database_url.rsplit("@", 1)[-1],
    )
    yield
    await engine.dispose()
    logger.info("sleep_debt_api_stopped")


app = FastAPI(
    title="Sleep Debt API",
    description=(
        "Anchors raw sleep intervals to sleep days, keeps one summary per day "
        "and reports rolling sleep debt against a nightly goal."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestIdMiddleware)
install_problem_handlers(app)
app.include_router(debt_router)
app.mount("/metrics", create_metrics_app())


@app.get("/health", tags=["ops"])
async def health():
    return {"status": "ok"}
