"""FastAPI endpoints for the Card Statement Tracker API.

This module defines thin adapters over the job pipeline: enqueueing frame extraction jobs (inline or uploaded to
blob storage), polling job status, triggering the worker, and viewing or re-categorizing transactions. Every
owner-facing route is scoped to the owner named by the `X-User-Id` header.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tracker.api.dependencies import (
    get_category_store,
    get_file_service,
    get_job_runner,
    get_job_store,
    get_owner,
    get_transaction_store,
)
from tracker.core.dates import normalize_date
from tracker.core.models import (
    TRANSACTION_CATEGORIES,
    Job,
    JobPayload,
    JobState,
    JobStatus,
    TransactionCandidate,
    WorkerSummary,
)
from tracker.core.utils import get_logger
from tracker.services.file_service import FileService
from tracker.services.job_store import JobStore
from tracker.services.merchant_categories import MerchantCategoryStore
from tracker.services.transaction_store import TransactionStore
from tracker.workers.job_runner import JobRunner

router = APIRouter()
logger = get_logger("card-tracker.api")

HTTP_202_ACCEPTED = 202
HTTP_409_CONFLICT = 409


class EnqueueFramesRequest(BaseModel):
    """Inline frames, as base64 data URLs."""

    frames: list[str] = Field(min_length=1)


class ManualTransactionRequest(TransactionCandidate):
    """A transaction typed in by its owner; the date may use any supported statement layout."""

    category: str | None = None


class CategoryUpdate(BaseModel):
    """New category for a transaction; null clears it."""

    category: str | None = None


def trigger_worker(runner: JobRunner) -> None:
    """Run one worker cycle after a response has been sent."""
    try:
        summary = runner.run_once()
        logger.info(f"Triggered worker run: {summary.status} ({summary.processed} processed)")
    except Exception:
        logger.exception("Triggered worker run failed")


def _serialize_transaction(row: dict) -> dict:
    return {
        **row,
        "transaction_date": row["transaction_date"].isoformat(),
        "amount_spent": str(row["amount_spent"]),
        "rewards": str(row["rewards"]),
    }


def _job_status(job: Job) -> JobStatus:
    return JobStatus(
        job_id=job.id,
        status=job.status,
        result=job.result,
        error=job.error,
        retry_count=job.retry_count,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


@router.post(
    "/jobs",
    status_code=HTTP_202_ACCEPTED,
    summary="Queue inline statement frames for extraction",
    description=(
        "Queue a job that extracts card transactions from statement frames sent inline as base64 data URLs. "
        "A worker run is triggered in the background; poll `GET /jobs/{job_id}` for the outcome."
    ),
    response_description="Job accepted. Returns job_id.",
)
async def enqueue_frames(
    body: EnqueueFramesRequest,
    background_tasks: BackgroundTasks,
    owner: str = Depends(get_owner),
    job_store: JobStore = Depends(get_job_store),
    runner: JobRunner = Depends(get_job_runner),
) -> JSONResponse:
    """Create a job from inline frames and kick the worker."""
    job_id = job_store.enqueue(owner, JobPayload(frames=body.frames, frame_count=len(body.frames)))
    background_tasks.add_task(trigger_worker, runner)
    return JSONResponse(
        {"job_id": job_id, "status": JobState.PENDING.value, "frame_count": len(body.frames)},
        status_code=HTTP_202_ACCEPTED,
    )


@router.post(
    "/upload-frames",
    status_code=HTTP_202_ACCEPTED,
    summary="Upload statement frames and queue them for extraction",
    description=(
        "Upload frames as multipart files (form field `files`). They are stored in blob storage, referenced from the "
        "job, and deleted once the job has been processed."
    ),
    response_description="Job accepted. Returns job_id.",
)
async def upload_frames(
    files: list[UploadFile],
    background_tasks: BackgroundTasks,
    owner: str = Depends(get_owner),
    job_store: JobStore = Depends(get_job_store),
    file_service: FileService = Depends(get_file_service),
    runner: JobRunner = Depends(get_job_runner),
) -> JSONResponse:
    """Store uploaded frames, create a job referencing them and kick the worker."""
    frames = [await upload.read() for upload in files]
    frames = [frame for frame in frames if frame]
    if not frames:
        raise HTTPException(400, "No frames provided")
    logger.info(f"Uploading {len(frames)} frames for owner {owner}")
    refs = file_service.save_frames(owner, frames)
    job_id = job_store.enqueue(owner, JobPayload(frame_refs=refs, frame_count=len(refs)))
    background_tasks.add_task(trigger_worker, runner)
    return JSONResponse(
        {"job_id": job_id, "status": JobState.PENDING.value, "frame_count": len(refs)},
        status_code=HTTP_202_ACCEPTED,
    )


@router.get(
    "/jobs/{job_id}",
    response_model=JobStatus,
    summary="Get extraction job status",
    description="Return the status of one of the caller's jobs, with its result when completed or error when failed.",
    responses={404: {"description": "Job not found."}},
)
async def get_job_status(
    job_id: str,
    owner: str = Depends(get_owner),
    job_store: JobStore = Depends(get_job_store),
) -> JobStatus:
    """Get the status of a job owned by the caller."""
    job = job_store.get_job(job_id, owner)
    if not job:
        raise HTTPException(404, "Job not found")
    return _job_status(job)


@router.get("/jobs", summary="List the caller's recent jobs")
async def list_jobs(owner: str = Depends(get_owner), job_store: JobStore = Depends(get_job_store)) -> dict:
    """List jobs from the last 24 hours with counts per status."""
    jobs = job_store.list_recent_jobs(owner)
    counts = {state.value: sum(1 for job in jobs if job.status == state) for state in JobState}
    return {"jobs": [_job_status(job).model_dump() for job in jobs], **counts}


@router.api_route(
    "/worker",
    methods=["GET", "POST"],
    response_model=WorkerSummary,
    summary="Run one worker cycle",
    description=(
        "Requeue retryable failures, recover stuck jobs and process as many pending jobs as there are free slots. "
        "Safe to call concurrently from timers and on-demand triggers."
    ),
)
def run_worker(runner: JobRunner = Depends(get_job_runner)) -> WorkerSummary:
    """Trigger the worker and return its summary."""
    return runner.run_once()


@router.get("/transactions", summary="List the caller's transactions")
async def list_transactions(
    owner: str = Depends(get_owner),
    transactions: TransactionStore = Depends(get_transaction_store),
) -> dict:
    """List the caller's stored transactions."""
    return {"transactions": [_serialize_transaction(row) for row in transactions.list_for_owner(owner)]}


@router.post(
    "/transactions",
    summary="Add a transaction manually",
    description=(
        "Store a transaction entered by hand. It is fingerprinted like extracted transactions, so adding one that "
        "already exists is rejected as a duplicate."
    ),
    responses={400: {"description": "Invalid date or category."}, 409: {"description": "Duplicate transaction."}},
)
async def add_transaction(
    body: ManualTransactionRequest,
    owner: str = Depends(get_owner),
    transactions: TransactionStore = Depends(get_transaction_store),
) -> dict:
    """Normalize, fingerprint and insert a manually entered transaction."""
    if body.category is not None and body.category not in TRANSACTION_CATEGORIES:
        raise HTTPException(400, f"Unknown category: {body.category}")
    normalized_date = normalize_date(body.transaction_date)
    if not normalized_date:
        raise HTTPException(400, "Invalid date format")
    transaction_id, inserted = transactions.store_transaction(
        owner=owner,
        merchant_name=body.merchant_name,
        normalized_date=normalized_date,
        amount_spent=body.amount_spent,
        rewards=body.rewards,
        category=body.category,
    )
    if not inserted:
        raise HTTPException(HTTP_409_CONFLICT, "Transaction already exists (duplicate)")
    logger.info(f"Owner {owner} manually added transaction {transaction_id} ({body.merchant_name})")
    return {"success": True, "transaction": _serialize_transaction(transactions.get(transaction_id))}


@router.delete(
    "/transactions/{transaction_id}",
    summary="Delete a transaction",
    responses={403: {"description": "Forbidden."}, 404: {"description": "Transaction not found."}},
)
async def delete_transaction(
    transaction_id: str,
    owner: str = Depends(get_owner),
    transactions: TransactionStore = Depends(get_transaction_store),
) -> dict:
    """Delete one of the caller's transactions."""
    row = transactions.get(transaction_id)
    if not row:
        raise HTTPException(404, "Transaction not found")
    if row["owner"] != owner:
        raise HTTPException(403, "Forbidden")
    transactions.delete(transaction_id, owner)
    return {"success": True}


@router.put(
    "/transactions/{transaction_id}/category",
    summary="Re-categorize a transaction",
    description=(
        "Set the category of one of the caller's transactions. A non-null category is also remembered as the caller's "
        "override for that merchant, so future extractions use it; other owners are unaffected."
    ),
    responses={403: {"description": "Forbidden."}, 404: {"description": "Transaction not found."}},
)
async def update_transaction_category(
    transaction_id: str,
    body: CategoryUpdate,
    owner: str = Depends(get_owner),
    transactions: TransactionStore = Depends(get_transaction_store),
    categories: MerchantCategoryStore = Depends(get_category_store),
) -> dict:
    """Update a transaction's category and record the merchant override."""
    if body.category is not None and body.category not in TRANSACTION_CATEGORIES:
        raise HTTPException(400, f"Unknown category: {body.category}")
    row = transactions.get(transaction_id)
    if not row:
        raise HTTPException(404, "Transaction not found")
    if row["owner"] != owner:
        raise HTTPException(403, "Forbidden")
    transactions.set_category(transaction_id, owner, body.category)
    if body.category:
        categories.set_user_override(owner, row["merchant_name"], body.category, "manual")
    return {"success": True}


@router.get("/merchant-categories", summary="List the caller's merchant category overrides")
async def list_merchant_categories(
    owner: str = Depends(get_owner),
    categories: MerchantCategoryStore = Depends(get_category_store),
) -> dict:
    """List the caller's merchant overrides."""
    return {"categories": categories.list_user_overrides(owner)}


@router.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint. Returns status ok.",
    response_description="Status ok.",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
