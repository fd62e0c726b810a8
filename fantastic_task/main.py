"""fantastic_task - recurring household task scheduling and points engine."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from fantastic_task.core.config import settings
from fantastic_task.core.db_client import DatabaseClient
from fantastic_task.core.logging import configure_logfire, instrument_fastapi
from fantastic_task.interface.api_router import router as api_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Configure logging first so startup logs are captured
    configure_logfire()

    db = DatabaseClient(db_path=settings.sqlite_db_path)
    await db.init_db()
    app.state.db = db
    logger.info("Database initialized", extra={"db_path": str(db.path)})

    yield

    await db.close()
    logger.info("Database connection closed")


app = FastAPI(
    title="fantastic-task",
    description="Recurring household task scheduling, completion verification and points",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(api_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)
