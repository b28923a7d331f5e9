"""Background job orchestration for frame extraction jobs."""

import concurrent.futures
import time

from botocore.exceptions import BotoCoreError, ClientError

from tracker.agents.base import BaseAgent
from tracker.core.dates import normalize_date
from tracker.core.models import BlobRef, Job, JobPayload, JobResult, JobState, TransactionCandidate, WorkerSummary
from tracker.core.settings import Settings
from tracker.core.utils import get_logger
from tracker.services.categorizer import CategoryResolver
from tracker.services.file_service import FileService, decode_inline_frame
from tracker.services.job_store import JobStore
from tracker.services.transaction_store import TransactionStore

logger = get_logger("card-tracker.worker")


class JobRunner:
    """JobRunner claims pending jobs from the store and runs them on a bounded thread pool.

    Concurrency is bounded system-wide: the claim itself only takes jobs while fewer than
    `max_concurrent_jobs` are processing, whichever worker holds them, so concurrent invocations
    cannot overshoot the limit. With `max_concurrent_jobs=1` at most one job runs anywhere at a time.
    """

    def __init__(
        self,
        job_store: JobStore,
        transaction_store: TransactionStore,
        categorizer: CategoryResolver,
        agent: BaseAgent,
        file_service: FileService | None,
        settings: Settings,
    ) -> None:
        """Initialize JobRunner with its stores, categorizer, extraction agent and blob storage."""
        self.job_store = job_store
        self.transaction_store = transaction_store
        self.categorizer = categorizer
        self.agent = agent
        self.file_service = file_service
        self.settings = settings

    def run_once(self) -> WorkerSummary:
        """Run one worker cycle: retry failures, recover stuck jobs, claim free slots and process them."""
        started = time.monotonic()
        limit = self.settings.max_concurrent_jobs
        requeued = self.job_store.requeue_failed(self.settings.max_job_retries, self.settings.retry_batch_size)
        recovered = self.job_store.recover_stuck(self.settings.stuck_job_minutes)
        jobs: list[Job] = []
        if self.job_store.count_processing() < limit:
            jobs = self.job_store.claim_pending(limit, max_processing=limit)
        if not jobs:
            queue = self.job_store.queue_stats()
            if queue[JobState.PROCESSING.value] >= limit:
                logger.info(f"At capacity ({limit} jobs processing); not claiming")
                return WorkerSummary(
                    status="at_capacity",
                    message="Maximum concurrent jobs already processing",
                    requeued=requeued,
                    recovered=recovered,
                    queue=queue,
                )
            return WorkerSummary(
                status="idle", message="No pending jobs", requeued=requeued, recovered=recovered, queue=queue
            )
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(jobs)) as executor:
            futures = [executor.submit(self.process_job, job) for job in jobs]
            for job, future in zip(jobs, futures, strict=True):
                exc = future.exception()
                if exc is not None:
                    logger.error(f"Job {job.id} could not be finalized: {exc}")
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Processed {len(jobs)} job(s) in {duration_ms}ms")
        return WorkerSummary(
            status="processed",
            message=f"Processed {len(jobs)} job(s)",
            processed=len(jobs),
            job_ids=[job.id for job in jobs],
            duration_ms=duration_ms,
            requeued=requeued,
            recovered=recovered,
            queue=self.job_store.queue_stats(),
        )

    def process_job(self, job: Job) -> None:
        """Extract, categorize and store the transactions of one claimed job, then finalize it.

        Never raises: any failure is recorded on the job so sibling jobs are unaffected.
        """
        logger.info(f"Starting job: {job.id} (owner {job.owner}, attempt {job.retry_count + 1})")
        refs: list[BlobRef] = []
        try:
            payload = JobPayload.model_validate(job.payload)
            refs = payload.frame_refs
            frames = self._load_frames(payload)
            logger.info(f"Job {job.id}: extracting from {len(frames)} frames")
            candidates = self.agent.extract(frames)
            result = self._store_candidates(job, candidates)
            self.job_store.complete(job.id, result.model_dump(mode="json"))
            logger.info(
                f"Job {job.id} completed: {result.added} added, {result.duplicates} duplicates, "
                f"{result.skipped} skipped"
            )
        except Exception as exc:
            logger.exception(f"Error processing job {job.id}")
            self.job_store.fail(job.id, str(exc) or exc.__class__.__name__)
        finally:
            self._cleanup_blobs(job.id, refs)

    def _load_frames(self, payload: JobPayload) -> list[bytes]:
        if payload.frames:
            return [decode_inline_frame(frame) for frame in payload.frames]
        if payload.frame_refs:
            if self.file_service is None:
                msg = "Job references stored frames but no blob storage is configured"
                raise RuntimeError(msg)
            return [self.file_service.get_file(ref.key) for ref in payload.frame_refs]
        msg = "No frames in job payload"
        raise ValueError(msg)

    def _store_candidates(self, job: Job, candidates: list[TransactionCandidate]) -> JobResult:
        result = JobResult(transactions=candidates)
        for candidate in candidates:
            normalized_date = normalize_date(candidate.transaction_date)
            if not normalized_date:
                logger.warning(
                    f"Job {job.id}: skipping '{candidate.merchant_name}', "
                    f"unparseable date {candidate.transaction_date!r}"
                )
                result.skipped += 1
                continue
            category = self.categorizer.resolve(job.owner, candidate.merchant_name)
            _, inserted = self.transaction_store.store_transaction(
                owner=job.owner,
                merchant_name=candidate.merchant_name,
                normalized_date=normalized_date,
                amount_spent=candidate.amount_spent,
                rewards=candidate.rewards,
                category=category,
                job_id=job.id,
            )
            if inserted:
                result.added += 1
            else:
                result.duplicates += 1
        return result

    def _cleanup_blobs(self, job_id: str, refs: list[BlobRef]) -> None:
        if not refs or self.file_service is None:
            return
        deleted = 0
        for ref in refs:
            try:
                self.file_service.delete_file(ref.key)
                deleted += 1
            except (ClientError, BotoCoreError, OSError) as exc:
                logger.warning(f"Job {job_id}: could not delete frame {ref.key}: {exc}")
        logger.info(f"Job {job_id}: deleted {deleted}/{len(refs)} stored frames")


def build_job_runner(settings: Settings) -> JobRunner:
    """Wire a JobRunner from settings: database, S3 blob storage, Groq vision client and place search."""
    from tracker.agents.extraction_agent import VisionExtractionAgent, build_groq_client
    from tracker.core.db import create_db_engine, init_db
    from tracker.services.merchant_categories import MerchantCategoryStore
    from tracker.services.places_client import PlacesClient
    from tracker.services.s3_file_service import S3FileService

    engine = create_db_engine(settings.database_url)
    init_db(engine)
    places = None
    if settings.google_places_api_key:
        places = PlacesClient(settings.google_places_api_key, settings.places_base_url, settings.places_timeout)
    return JobRunner(
        job_store=JobStore(engine),
        transaction_store=TransactionStore(engine),
        categorizer=CategoryResolver(MerchantCategoryStore(engine), places),
        agent=VisionExtractionAgent(build_groq_client(settings), settings),
        file_service=FileService(S3FileService(settings)),
        settings=settings,
    )


def run_worker(settings: Settings | None = None) -> WorkerSummary:
    """Top-level function to run one worker cycle (for cron and on-demand triggers)."""
    from tracker.core.settings import get_settings

    runner = build_job_runner(settings or get_settings())
    return runner.run_once()


if __name__ == "__main__":
    summary = run_worker()
    logger.info(f"Worker finished: {summary.model_dump_json()}")
