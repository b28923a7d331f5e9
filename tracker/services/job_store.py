"""Durable job queue backed by the `jobs` table.

Every state transition is a single conditional UPDATE so that concurrent workers, in the same process or not,
coordinate only through the database: a job is handed to exactly one claimer, and a terminal transition only applies
to a job that is still processing.
"""

import uuid
from typing import Any

from sqlalchemy import ColumnElement, and_, case, func, literal, or_, select, update
from sqlalchemy.engine import Engine, RowMapping

from tracker.core.db import jobs_table
from tracker.core.models import DEFAULT_JOB_KIND, Job, JobPayload, JobState
from tracker.core.utils import get_logger, minutes_ago_iso, utcnow_iso

logger = get_logger("card-tracker.jobs")

RECENT_JOBS_LIMIT = 50
# Advisory lock id serializing capacity-bounded claims on PostgreSQL.
CLAIM_LOCK_KEY = 0x6A6F6273


def _row_to_job(row: RowMapping) -> Job:
    return Job(**dict(row))


class JobStore:
    """Queue operations over the jobs table."""

    def __init__(self, engine: Engine) -> None:
        """Initialize the store with a SQLAlchemy engine."""
        self.engine = engine
        self.jobs = jobs_table

    def enqueue(self, owner: str, payload: JobPayload | dict[str, Any], kind: str = DEFAULT_JOB_KIND) -> str:
        """Insert a pending job and return its id."""
        if isinstance(payload, JobPayload):
            payload = payload.model_dump(mode="json", exclude_none=True)
        job_id = str(uuid.uuid4())
        now = utcnow_iso()
        with self.engine.begin() as conn:
            conn.execute(
                self.jobs.insert().values(
                    id=job_id,
                    owner=owner,
                    kind=kind,
                    status=JobState.PENDING.value,
                    payload=payload,
                    retry_count=0,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info(f"Enqueued job {job_id} ({kind}) for owner {owner}")
        return job_id

    def claim_pending(self, max_count: int, max_processing: int | None = None) -> list[Job]:
        """Atomically move up to `max_count` of the oldest pending jobs to processing and return them.

        The selection and the transition are one UPDATE ... RETURNING statement. On PostgreSQL the
        inner SELECT skips rows another transaction has locked; SQLite serializes writers. Either
        way two callers never receive the same job.

        With `max_processing` the claim is also capped so that no more than `max_processing` jobs are
        processing once it commits, counting jobs held by every worker. The count is evaluated inside
        the same statement; on PostgreSQL claimers additionally serialize on a transaction-scoped
        advisory lock so each one sees the claims committed before it.
        """
        if max_count <= 0:
            return []
        limit: int | ColumnElement[int] = max_count
        if max_processing is not None:
            processing = (
                select(func.count())
                .select_from(self.jobs)
                .where(self.jobs.c.status == JobState.PROCESSING.value)
                .scalar_subquery()
            )
            free = literal(max_processing) - processing
            limit = case((free <= 0, 0), (free < max_count, free), else_=max_count)
        now = utcnow_iso()
        oldest_pending = (
            select(self.jobs.c.id)
            .where(self.jobs.c.status == JobState.PENDING.value)
            .order_by(self.jobs.c.created_at, self.jobs.c.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(self.jobs)
            .where(and_(self.jobs.c.id.in_(oldest_pending), self.jobs.c.status == JobState.PENDING.value))
            .values(status=JobState.PROCESSING.value, started_at=now, updated_at=now)
            .returning(*self.jobs.c)
        )
        with self.engine.begin() as conn:
            if max_processing is not None and conn.dialect.name == "postgresql":
                conn.execute(select(func.pg_advisory_xact_lock(CLAIM_LOCK_KEY)))
            rows = conn.execute(stmt).mappings().all()
        jobs = sorted((_row_to_job(row) for row in rows), key=lambda job: (job.created_at, job.id))
        if jobs:
            logger.info(f"Claimed {len(jobs)} job(s): {', '.join(job.id for job in jobs)}")
        return jobs

    def recover_stuck(self, threshold_minutes: float) -> int:
        """Return jobs processing for longer than `threshold_minutes` to pending; returns how many."""
        cutoff = minutes_ago_iso(threshold_minutes)
        stmt = (
            update(self.jobs)
            .where(
                and_(
                    self.jobs.c.status == JobState.PROCESSING.value,
                    or_(self.jobs.c.started_at.is_(None), self.jobs.c.started_at < cutoff),
                )
            )
            .values(status=JobState.PENDING.value, started_at=None, updated_at=utcnow_iso())
        )
        with self.engine.begin() as conn:
            count = conn.execute(stmt).rowcount
        if count:
            logger.warning(f"Recovered {count} job(s) stuck in processing for over {threshold_minutes} minutes")
        return count

    def requeue_failed(self, max_retries: int, max_batch: int) -> int:
        """Move up to `max_batch` of the oldest failed jobs still under `max_retries` back to pending."""
        if max_batch <= 0:
            return 0
        retryable = (
            select(self.jobs.c.id)
            .where(and_(self.jobs.c.status == JobState.FAILED.value, self.jobs.c.retry_count < max_retries))
            .order_by(self.jobs.c.created_at, self.jobs.c.id)
            .limit(max_batch)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(self.jobs)
            .where(
                and_(
                    self.jobs.c.id.in_(retryable),
                    self.jobs.c.status == JobState.FAILED.value,
                    self.jobs.c.retry_count < max_retries,
                )
            )
            .values(
                status=JobState.PENDING.value,
                retry_count=self.jobs.c.retry_count + 1,
                error=None,
                started_at=None,
                completed_at=None,
                updated_at=utcnow_iso(),
            )
        )
        with self.engine.begin() as conn:
            count = conn.execute(stmt).rowcount
        if count:
            logger.info(f"Requeued {count} failed job(s) for retry")
        return count

    def complete(self, job_id: str, result: dict[str, Any]) -> bool:
        """Mark a processing job completed with its result summary; a no-op for any other state."""
        return self._finish(job_id, JobState.COMPLETED, result=result, error=None)

    def fail(self, job_id: str, error: str) -> bool:
        """Mark a processing job failed with a human-readable error; a no-op for any other state."""
        return self._finish(job_id, JobState.FAILED, result=None, error=error)

    def _finish(self, job_id: str, status: JobState, result: dict[str, Any] | None, error: str | None) -> bool:
        now = utcnow_iso()
        stmt = (
            update(self.jobs)
            .where(and_(self.jobs.c.id == job_id, self.jobs.c.status == JobState.PROCESSING.value))
            .values(status=status.value, result=result, error=error, completed_at=now, updated_at=now)
        )
        with self.engine.begin() as conn:
            updated = conn.execute(stmt).rowcount
        if not updated:
            logger.warning(f"Job {job_id} is no longer processing; ignoring transition to {status.value}")
            return False
        return True

    def count_processing(self) -> int:
        """Count jobs currently held by any worker."""
        stmt = select(func.count()).select_from(self.jobs).where(self.jobs.c.status == JobState.PROCESSING.value)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar_one()

    def get_job(self, job_id: str, owner: str) -> Job | None:
        """Fetch a job visible to `owner`; jobs of other owners are reported as missing."""
        stmt = select(self.jobs).where(and_(self.jobs.c.id == job_id, self.jobs.c.owner == owner))
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return _row_to_job(row) if row else None

    def list_recent_jobs(self, owner: str, hours: float = 24, limit: int = RECENT_JOBS_LIMIT) -> list[Job]:
        """List the owner's jobs created within the last `hours`, newest first."""
        stmt = (
            select(self.jobs)
            .where(and_(self.jobs.c.owner == owner, self.jobs.c.created_at > minutes_ago_iso(hours * 60)))
            .order_by(self.jobs.c.created_at.desc())
            .limit(limit)
        )
        with self.engine.connect() as conn:
            return [_row_to_job(row) for row in conn.execute(stmt).mappings().all()]

    def queue_stats(self) -> dict[str, int]:
        """Count jobs per status across all owners."""
        stmt = select(self.jobs.c.status, func.count()).group_by(self.jobs.c.status)
        stats = {state.value: 0 for state in JobState}
        with self.engine.connect() as conn:
            for status, count in conn.execute(stmt).all():
                stats[status] = count
        return stats
