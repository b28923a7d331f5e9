"""Main entrypoint and application factory for the Card Statement Tracker API.

This module initializes the FastAPI application, configures logging, creates the database tables, and exposes the
Scalar API reference endpoint for interactive OpenAPI documentation. It also includes the main entrypoint for running
the app with Uvicorn.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from scalar_fastapi import get_scalar_api_reference
from sqlalchemy.exc import SQLAlchemyError

from tracker.api.dependencies import get_engine
from tracker.api.routes import router
from tracker.core.settings import get_settings
from tracker.core.utils import ensure_dir, get_logger


# --- Logging Setup ---
def setup_logging() -> None:
    """Configure logging to file and console, and ensure the log directory exists."""
    log_file = Path(get_settings().log_file)
    ensure_dir(log_file.parent)
    logger = get_logger("card-tracker")
    logger.setLevel(logging.INFO)
    # Add file handler for persistent logs (not colorized)
    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(file_handler)
    logger.propagate = False
    # Component loggers (card-tracker.worker, ...) write through the root project logger's file handler.
    components = (
        "worker",
        "agent",
        "parser",
        "retry",
        "jobs",
        "transactions",
        "categories",
        "categorizer",
        "places",
        "api",
        "blobs",
    )
    for name in components:
        child = get_logger(f"card-tracker.{name}")
        for handler in logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler not in child.handlers:
                child.addHandler(handler)


setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan event handler to create the jobs, transactions and merchant category tables."""
    _ = app  # Silence unused argument warning
    try:
        get_engine()
    except SQLAlchemyError as exc:
        get_logger("card-tracker").exception(f"Failed to initialize database: {exc}")
        raise
    yield


app = FastAPI(
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    title="Card Statement Tracker API",
    description="""
    The Card Statement Tracker API queues credit card statement frames for asynchronous transaction extraction
    with a vision model, and exposes the deduplicated, categorized transactions.

    **Endpoints:**
    - `POST /jobs`: Queue inline frames (base64 data URLs). Returns a `job_id`.
    - `POST /upload-frames`: Upload frames to blob storage and queue them. Returns a `job_id`.
    - `GET /jobs/{{job_id}}`: Check the status of an extraction job.
    - `GET /jobs`: List recent jobs with counts per status.
    - `GET|POST /worker`: Run one worker cycle.
    - `GET /transactions`, `PUT /transactions/{{id}}/category`: View and re-categorize transactions.
    - `GET /merchant-categories`: List merchant category overrides.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
    version="1.0.0",
)
app.include_router(router)


@app.get("/scalar", include_in_schema=False)
async def scalar_docs() -> JSONResponse:
    """Return Scalar API reference."""
    return get_scalar_api_reference(openapi_url=app.openapi_url, title=app.title)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:app", host=settings.server_host, port=settings.server_port, reload=True)
