"""Storage of extracted transactions, keyed by fingerprint for idempotent inserts."""

from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, delete, select, update
from sqlalchemy.engine import Engine

from tracker.core.db import insert_ignoring_conflicts, transactions_table
from tracker.core.fingerprint import fingerprint, quantize_amount, quantize_reward
from tracker.core.utils import get_logger, utcnow_iso

logger = get_logger("card-tracker.transactions")


class TransactionStore:
    """Owner-scoped access to the transactions table."""

    def __init__(self, engine: Engine) -> None:
        """Initialize the store with a SQLAlchemy engine."""
        self.engine = engine
        self.transactions = transactions_table

    def insert_if_absent(
        self,
        transaction_id: str,
        owner: str,
        merchant_name: str,
        transaction_date: str,
        amount_spent: Decimal,
        rewards: Decimal,
        category: str | None,
        job_id: str | None = None,
    ) -> bool:
        """Insert a transaction unless its fingerprint is already stored.

        Returns:
            True if a row was written, False if the fingerprint already existed.
        """
        now = utcnow_iso()
        stmt = insert_ignoring_conflicts(self.engine, self.transactions).values(
            id=transaction_id,
            owner=owner,
            merchant_name=merchant_name,
            transaction_date=date.fromisoformat(transaction_date),
            amount_spent=amount_spent,
            rewards=rewards,
            category=category,
            job_id=job_id,
            created_at=now,
            updated_at=now,
        )
        with self.engine.begin() as conn:
            inserted = conn.execute(stmt).rowcount
        return inserted == 1

    def store_transaction(
        self,
        owner: str,
        merchant_name: str,
        normalized_date: str,
        amount_spent: Decimal,
        rewards: Decimal,
        category: str | None,
        job_id: str | None = None,
    ) -> tuple[str, bool]:
        """Fingerprint a transaction at stored precision and insert it unless already present.

        Amounts are rounded to their column scale first, so the id always matches the stored row.

        Returns:
            The transaction id and whether a new row was written.
        """
        amount = quantize_amount(amount_spent)
        reward = quantize_reward(rewards)
        transaction_id = fingerprint(owner, merchant_name, normalized_date, amount, reward)
        inserted = self.insert_if_absent(
            transaction_id=transaction_id,
            owner=owner,
            merchant_name=merchant_name,
            transaction_date=normalized_date,
            amount_spent=amount,
            rewards=reward,
            category=category,
            job_id=job_id,
        )
        return transaction_id, inserted

    def get(self, transaction_id: str) -> dict[str, Any] | None:
        """Fetch a transaction by id regardless of owner."""
        stmt = select(self.transactions).where(self.transactions.c.id == transaction_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return dict(row) if row else None

    def list_for_owner(self, owner: str) -> list[dict[str, Any]]:
        """List an owner's transactions, most recent first."""
        stmt = (
            select(self.transactions)
            .where(self.transactions.c.owner == owner)
            .order_by(self.transactions.c.transaction_date.desc(), self.transactions.c.created_at.desc())
        )
        with self.engine.connect() as conn:
            return [dict(row) for row in conn.execute(stmt).mappings().all()]

    def set_category(self, transaction_id: str, owner: str, category: str | None) -> bool:
        """Change the category of one of the owner's transactions."""
        stmt = (
            update(self.transactions)
            .where(and_(self.transactions.c.id == transaction_id, self.transactions.c.owner == owner))
            .values(category=category, updated_at=utcnow_iso())
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount == 1

    def delete(self, transaction_id: str, owner: str) -> bool:
        """Delete one of the owner's transactions; returns False if the owner has no such transaction."""
        stmt = delete(self.transactions).where(
            and_(self.transactions.c.id == transaction_id, self.transactions.c.owner == owner)
        )
        with self.engine.begin() as conn:
            deleted = conn.execute(stmt).rowcount == 1
        if deleted:
            logger.info(f"Owner {owner} deleted transaction {transaction_id}")
        return deleted
