"""Pydantic models for the Card Statement Tracker.

This module defines the models shared across the pipeline: the job record read back from the
queue, job payloads, extracted transaction candidates, job result summaries and the worker
invocation summary.
"""

from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

TRANSACTION_CATEGORIES = [
    "Food & Dining",
    "Shopping",
    "Entertainment",
    "Transportation",
    "Travel",
    "Utilities",
    "Healthcare",
    "Education",
    "Business",
    "Other",
]

DEFAULT_JOB_KIND = "video_extract"


class JobState(StrEnum):
    """Lifecycle states of a queued job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class BlobRef(BaseModel):
    """Reference to a frame stored in the blob store."""

    key: str
    size: int | None = None


class JobPayload(BaseModel):
    """Frames to extract from: inline data URLs or references to stored blobs."""

    frames: list[str] = Field(default_factory=list)
    frame_refs: list[BlobRef] = Field(default_factory=list)
    frame_count: int | None = None


class Job(BaseModel):
    """A job row as returned by the job store."""

    id: str
    owner: str
    kind: str = DEFAULT_JOB_KIND
    status: JobState
    payload: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] | None = None
    error: str | None = None
    retry_count: int = 0
    created_at: str
    started_at: str | None = None
    completed_at: str | None = None
    updated_at: str | None = None


def _to_decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, int):
        return Decimal(value)
    text = str(value).strip().replace("$", "").replace(",", "")
    if text.startswith("(") and text.endswith(")"):
        text = "-" + text[1:-1]
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        msg = f"Not a decimal amount: {value!r}"
        raise ValueError(msg) from exc


class TransactionCandidate(BaseModel):
    """A transaction as read off the statement frames, before normalization."""

    merchant_name: str = Field(min_length=1)
    transaction_date: str
    amount_spent: Decimal
    rewards: Decimal = Field(default=Decimal(0), validation_alias=AliasChoices("rewards", "bitcoin_rewards"))

    @field_validator("merchant_name", "transaction_date", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> str:
        return str(value).strip() if value is not None else ""

    @field_validator("amount_spent", mode="before")
    @classmethod
    def _parse_amount(cls, value: object) -> Decimal:
        return _to_decimal(value)

    @field_validator("rewards", mode="before")
    @classmethod
    def _parse_rewards(cls, value: object) -> Decimal:
        if value is None or value == "":
            return Decimal(0)
        return _to_decimal(value)


class JobResult(BaseModel):
    """Summary stored on a completed job."""

    transactions: list[TransactionCandidate] = Field(default_factory=list)
    added: int = 0
    duplicates: int = 0
    skipped: int = 0


class JobStatus(BaseModel):
    """Pydantic model representing the status of an extraction job, as shown to its owner."""

    job_id: str
    status: JobState
    result: dict[str, Any] | None = None
    error: str | None = None
    retry_count: int = 0
    created_at: str
    started_at: str | None = None
    completed_at: str | None = None


class WorkerSummary(BaseModel):
    """Outcome of one worker invocation."""

    status: str
    message: str = ""
    processed: int = 0
    job_ids: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    requeued: int = 0
    recovered: int = 0
    queue: dict[str, int] = Field(default_factory=dict)
