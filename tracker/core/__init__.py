"""Core package: provides models, database schema, settings, normalization helpers, and shared utilities."""

from .db import get_engine, init_db  # noqa: F401
from .models import Job, JobState, TransactionCandidate  # noqa: F401
from .settings import Settings  # noqa: F401
from .utils import get_logger  # noqa: F401
