"""FastAPI dependencies for DI (settings, stores, blob storage, job runner, owner).

This module provides dependency injection helpers for settings, the database-backed stores, S3 blob storage and the
job runner, enabling modular and testable API endpoints. Tests replace any of them through `app.dependency_overrides`.
"""

from functools import lru_cache

from fastapi import Header, HTTPException
from sqlalchemy.engine import Engine

from tracker.core.db import create_db_engine, init_db
from tracker.core.settings import Settings, get_settings
from tracker.services.file_service import FileService
from tracker.services.job_store import JobStore
from tracker.services.merchant_categories import MerchantCategoryStore
from tracker.services.s3_file_service import S3FileService
from tracker.services.transaction_store import TransactionStore
from tracker.workers.job_runner import JobRunner, build_job_runner


@lru_cache
def get_engine() -> Engine:
    """Provide the process-wide SQLAlchemy engine, creating tables on first use."""
    engine = create_db_engine(get_settings().database_url)
    init_db(engine)
    return engine


def get_app_settings() -> Settings:
    """Provide application settings for dependency injection."""
    return get_settings()


def get_job_store() -> JobStore:
    """Provide the job store."""
    return JobStore(get_engine())


def get_transaction_store() -> TransactionStore:
    """Provide the transaction store."""
    return TransactionStore(get_engine())


def get_category_store() -> MerchantCategoryStore:
    """Provide the merchant category store."""
    return MerchantCategoryStore(get_engine())


@lru_cache
def get_file_service() -> FileService:
    """Provide S3-backed frame storage."""
    return FileService(S3FileService(get_settings()))


@lru_cache
def get_job_runner() -> JobRunner:
    """Provide a fully wired job runner."""
    return build_job_runner(get_settings())


def get_owner(x_user_id: str | None = Header(default=None)) -> str:
    """Identify the requesting owner from the `X-User-Id` header set by the authenticating proxy."""
    if not x_user_id:
        raise HTTPException(401, "Unauthorized")
    return x_user_id
