"""Merchant category caches: the global write-through cache and per-owner overrides."""

from typing import Any

from sqlalchemy import and_, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from tracker.core.db import MerchantCategory, UserMerchantCategory, insert_ignoring_conflicts
from tracker.core.fingerprint import normalize_merchant
from tracker.core.utils import get_logger, utcnow_iso

logger = get_logger("card-tracker.categories")

GLOBAL_SOURCES = ("heuristic", "external", "manual")


class MerchantCategoryStore:
    """Lookups and writes for both merchant category tables, matched case-insensitively."""

    def __init__(self, engine: Engine) -> None:
        """Initialize the store with a SQLAlchemy engine."""
        self.engine = engine

    def get_user_override(self, owner: str, merchant_name: str) -> str | None:
        """Return the owner's category for the merchant, if they set one."""
        key = normalize_merchant(merchant_name)
        with Session(self.engine) as session:
            return session.scalar(
                select(UserMerchantCategory.category).where(
                    and_(UserMerchantCategory.owner == owner, UserMerchantCategory.merchant_key == key)
                )
            )

    def set_user_override(self, owner: str, merchant_name: str, category: str, source: str = "manual") -> None:
        """Create or replace the owner's category for the merchant."""
        key = normalize_merchant(merchant_name)
        now = utcnow_iso()
        with Session(self.engine) as session, session.begin():
            existing = session.scalar(
                select(UserMerchantCategory).where(
                    and_(UserMerchantCategory.owner == owner, UserMerchantCategory.merchant_key == key)
                )
            )
            if existing:
                existing.category = category
                existing.source = source
                existing.merchant_name = merchant_name
                existing.updated_at = now
            else:
                session.add(
                    UserMerchantCategory(
                        owner=owner,
                        merchant_key=key,
                        merchant_name=merchant_name,
                        category=category,
                        source=source,
                        created_at=now,
                        updated_at=now,
                    )
                )
        logger.info(f"Owner {owner} set category for '{merchant_name}' -> '{category}'")

    def delete_user_override(self, owner: str, merchant_name: str) -> bool:
        """Remove the owner's category for the merchant."""
        key = normalize_merchant(merchant_name)
        with Session(self.engine) as session, session.begin():
            result = session.execute(
                delete(UserMerchantCategory).where(
                    and_(UserMerchantCategory.owner == owner, UserMerchantCategory.merchant_key == key)
                )
            )
            return result.rowcount > 0

    def list_user_overrides(self, owner: str) -> list[dict[str, Any]]:
        """List the owner's overrides, most recently changed first."""
        with Session(self.engine) as session:
            rows = session.scalars(
                select(UserMerchantCategory)
                .where(UserMerchantCategory.owner == owner)
                .order_by(UserMerchantCategory.updated_at.desc())
            ).all()
            return [
                {
                    "merchant_name": row.merchant_name,
                    "category": row.category,
                    "source": row.source,
                    "created_at": row.created_at,
                    "updated_at": row.updated_at,
                }
                for row in rows
            ]

    def get_global(self, merchant_name: str) -> str | None:
        """Return the globally cached category for the merchant."""
        key = normalize_merchant(merchant_name)
        with Session(self.engine) as session:
            return session.scalar(select(MerchantCategory.category).where(MerchantCategory.merchant_key == key))

    def set_global(self, merchant_name: str, category: str, source: str) -> bool:
        """Cache a category for the merchant unless one is already cached; returns True if written."""
        if source not in GLOBAL_SOURCES:
            msg = f"Unknown category source: {source}"
            raise ValueError(msg)
        now = utcnow_iso()
        stmt = insert_ignoring_conflicts(self.engine, MerchantCategory.__table__).values(
            merchant_key=normalize_merchant(merchant_name),
            merchant_name=merchant_name,
            category=category,
            source=source,
            created_at=now,
            updated_at=now,
        )
        with self.engine.begin() as conn:
            written = conn.execute(stmt).rowcount == 1
        if written:
            logger.info(f"Cached category for '{merchant_name}' -> '{category}' ({source})")
        return written

    def global_cache_size(self) -> int:
        """Count globally cached merchants."""
        with Session(self.engine) as session:
            return session.scalar(select(func.count()).select_from(MerchantCategory))
