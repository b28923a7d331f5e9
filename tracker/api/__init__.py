"""API package: provides FastAPI dependencies and route definitions for the application."""

from .dependencies import get_job_runner, get_job_store, get_owner  # noqa: F401
from .routes import router  # noqa: F401
