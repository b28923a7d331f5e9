"""Shared fixtures: a throwaway SQLite database, stores over it, and fakes for the external collaborators."""

import base64
import os
import tempfile
from collections.abc import Iterator
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import update
from sqlalchemy.engine import Engine

os.environ.setdefault("GROQ_API_KEY", "test-key")
os.environ.setdefault("LOG_FILE", str(Path(tempfile.gettempdir()) / "card-tracker-tests" / "worker.log"))

from tracker.core.db import create_db_engine, init_db, jobs_table  # noqa: E402
from tracker.core.models import TransactionCandidate  # noqa: E402
from tracker.core.settings import Settings  # noqa: E402
from tracker.services.categorizer import CategoryResolver  # noqa: E402
from tracker.services.file_service import FileService  # noqa: E402
from tracker.services.job_store import JobStore  # noqa: E402
from tracker.services.merchant_categories import MerchantCategoryStore  # noqa: E402
from tracker.services.transaction_store import TransactionStore  # noqa: E402
from tracker.workers.job_runner import JobRunner  # noqa: E402

if TYPE_CHECKING:
    from fastapi.testclient import TestClient

PNG_FRAME = b"\x89PNG\r\n\x1a\nfake-frame"
JPEG_FRAME = b"\xff\xd8\xff\xe0fake-frame"


class MemoryBlobBackend:
    """In-memory stand-in for S3FileService."""

    def __init__(self) -> None:
        """Start with an empty bucket."""
        self.blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []

    def upload_fileobj(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        """Store a blob."""
        _ = content_type
        self.blobs[key] = data

    def download_fileobj(self, key: str) -> bytes:
        """Return a blob; missing keys raise KeyError like a failed download."""
        return self.blobs[key]

    def delete_fileobj(self, key: str) -> None:
        """Delete a blob and remember the key."""
        self.blobs.pop(key, None)
        self.deleted.append(key)


class FakeAgent:
    """Extraction agent returning canned candidates, or raising a canned error."""

    def __init__(self, candidates: list[TransactionCandidate] | None = None, error: Exception | None = None) -> None:
        """Configure the canned outcome."""
        self.candidates = candidates or []
        self.error = error
        self.calls: list[list[bytes]] = []

    def extract(self, frames: list[bytes]) -> list[TransactionCandidate]:
        """Record the frames and return the canned candidates."""
        self.calls.append(frames)
        if self.error is not None:
            raise self.error
        return list(self.candidates)


def make_candidate(
    merchant: str = "Starbucks",
    date: str = "01/15/2024",
    amount: str = "5.67",
    rewards: str = "0.12",
) -> TransactionCandidate:
    """Build a transaction candidate with sensible defaults."""
    return TransactionCandidate(
        merchant_name=merchant, transaction_date=date, amount_spent=Decimal(amount), rewards=Decimal(rewards)
    )


def fake_llm_client(*responses: str | Exception) -> SimpleNamespace:
    """Build a Groq-shaped client whose completions return (or raise) the given responses in order."""
    calls: list[dict] = []
    queue = list(responses)

    def create(**kwargs: object) -> SimpleNamespace:
        calls.append(kwargs)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=item))])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create, calls=calls)))


def set_job_fields(engine: Engine, job_id: str, **values: object) -> None:
    """Overwrite columns of a job row directly, e.g. to age its timestamps."""
    with engine.begin() as conn:
        conn.execute(update(jobs_table).where(jobs_table.c.id == job_id).values(**values))


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    """Provide a fresh SQLite database file with all tables created."""
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'tracker.db'}")
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Provide settings pointing at the test database, with instant backoff."""
    return Settings(
        groq_api_key="test-key",
        database_url=f"sqlite:///{tmp_path / 'tracker.db'}",
        frames_per_batch=2,
        rate_limit_max_attempts=3,
        rate_limit_base_delay=0.5,
        max_concurrent_jobs=2,
        stuck_job_minutes=5,
        max_job_retries=3,
        retry_batch_size=5,
    )


@pytest.fixture
def job_store(engine: Engine) -> JobStore:
    """Provide a job store over the test database."""
    return JobStore(engine)


@pytest.fixture
def transaction_store(engine: Engine) -> TransactionStore:
    """Provide a transaction store over the test database."""
    return TransactionStore(engine)


@pytest.fixture
def category_store(engine: Engine) -> MerchantCategoryStore:
    """Provide a merchant category store over the test database."""
    return MerchantCategoryStore(engine)


@pytest.fixture
def blob_backend() -> MemoryBlobBackend:
    """Provide an in-memory blob bucket."""
    return MemoryBlobBackend()


@pytest.fixture
def file_service(blob_backend: MemoryBlobBackend) -> FileService:
    """Provide a file service over the in-memory bucket."""
    return FileService(blob_backend)


@pytest.fixture
def agent() -> FakeAgent:
    """Provide an agent that extracts one Starbucks transaction."""
    return FakeAgent([make_candidate()])


@pytest.fixture
def runner(
    job_store: JobStore,
    transaction_store: TransactionStore,
    category_store: MerchantCategoryStore,
    agent: FakeAgent,
    file_service: FileService,
    settings: Settings,
) -> JobRunner:
    """Provide a job runner wired to the test stores and fakes."""
    return JobRunner(
        job_store=job_store,
        transaction_store=transaction_store,
        categorizer=CategoryResolver(category_store),
        agent=agent,
        file_service=file_service,
        settings=settings,
    )


@pytest.fixture
def api_client(
    job_store: JobStore,
    transaction_store: TransactionStore,
    category_store: MerchantCategoryStore,
    file_service: FileService,
    runner: JobRunner,
) -> Iterator["TestClient"]:
    """Provide a TestClient whose dependencies point at the test database and fakes."""
    from fastapi.testclient import TestClient

    from main import app
    from tracker.api import dependencies

    app.dependency_overrides[dependencies.get_job_store] = lambda: job_store
    app.dependency_overrides[dependencies.get_transaction_store] = lambda: transaction_store
    app.dependency_overrides[dependencies.get_category_store] = lambda: category_store
    app.dependency_overrides[dependencies.get_file_service] = lambda: file_service
    app.dependency_overrides[dependencies.get_job_runner] = lambda: runner
    yield TestClient(app)
    app.dependency_overrides.clear()


def data_url(frame: bytes) -> str:
    """Encode frame bytes as an inline data URL."""
    return "data:image/png;base64," + base64.b64encode(frame).decode("ascii")
