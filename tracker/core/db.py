"""DB schema, engine creation and dialect helpers for the Card Statement Tracker."""

from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    Date,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()

SQLITE_BUSY_TIMEOUT_SECONDS = 30


class MerchantCategory(Base):
    """Global merchant -> category cache shared by every owner."""

    __tablename__ = "merchant_categories"
    id = Column(Integer, primary_key=True)
    merchant_key = Column(String, unique=True, index=True, nullable=False)
    merchant_name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    source = Column(String, nullable=False, default="heuristic")
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class UserMerchantCategory(Base):
    """Per-owner category override for a merchant; always wins over the global cache."""

    __tablename__ = "user_merchant_categories"
    __table_args__ = (UniqueConstraint("owner", "merchant_key", name="uq_user_merchant"),)
    id = Column(Integer, primary_key=True)
    owner = Column(String, nullable=False, index=True)
    merchant_key = Column(String, nullable=False)
    merchant_name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    source = Column(String, nullable=False, default="manual")
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


jobs_table = Table(
    "jobs",
    Base.metadata,
    Column("id", String, primary_key=True),
    Column("owner", String, nullable=False),
    Column("kind", String, nullable=False, default="video_extract"),
    Column("status", String, nullable=False),
    Column("payload", JSON, nullable=False),
    Column("result", JSON(none_as_null=True), nullable=True),
    Column("error", Text, nullable=True),
    Column("retry_count", Integer, nullable=False, default=0),
    Column("created_at", String, nullable=False),
    Column("started_at", String, nullable=True),
    Column("completed_at", String, nullable=True),
    Column("updated_at", String, nullable=True),
    Index("idx_jobs_status_created", "status", "created_at"),
    Index("idx_jobs_owner", "owner"),
)

transactions_table = Table(
    "transactions",
    Base.metadata,
    Column("id", String, primary_key=True),
    Column("owner", String, nullable=False),
    Column("merchant_name", String, nullable=False),
    Column("transaction_date", Date, nullable=False),
    Column("amount_spent", Numeric(12, 2), nullable=False),
    Column("rewards", Numeric(18, 8), nullable=False, default=0),
    Column("category", String, nullable=True),
    Column("job_id", String, nullable=True),
    Column("created_at", String, nullable=False),
    Column("updated_at", String, nullable=False),
    Index("idx_transactions_owner", "owner"),
    Index("idx_transactions_date", "transaction_date"),
)


def create_db_engine(url: str) -> Engine:
    """Create a SQLAlchemy engine; SQLite connections may be shared across worker threads."""
    kwargs: dict[str, Any] = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
    return create_engine(url, **kwargs)


def get_engine() -> Engine:
    """Create a SQLAlchemy engine using the configured database URL."""
    from tracker.core.settings import get_settings

    return create_db_engine(get_settings().database_url)


def init_db(engine: Engine) -> None:
    """Create the jobs, transactions and merchant category tables if they do not exist."""
    Base.metadata.create_all(engine)


def insert_ignoring_conflicts(engine: Engine, table: Table) -> Any:
    """Build an INSERT that silently skips rows whose unique key already exists."""
    if engine.dialect.name == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing()
    if engine.dialect.name == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing()
    msg = f"Unsupported database dialect: {engine.dialect.name}"
    raise NotImplementedError(msg)
