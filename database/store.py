"""
Transactional posting store.

Thin SQLAlchemy layer the posting write path runs on: inserts and
lookups for postings and highlight allocations, the filtered usage
count, and the per-plan lock that serializes quota checks across
server instances.
"""

import logging
from typing import Literal, Optional

from sqlalchemy import func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.utils.datetime import now
from database.models.highlights import HighlightAllocation, PlanHighlightLock
from database.models.jobs import ACTIVE_STATUSES, JobPosting
from database.models.subscriptions import Plan

logger = logging.getLogger(__name__)

# First key of the two-key advisory lock form, keeps plan locks apart
# from any other advisory lock users of the same database.
ADVISORY_LOCK_NAMESPACE = 0x484C  # "HL"

LockStrategy = Literal["row", "advisory"]


class PostingStore:
    """
    Store operations bound to one session (one transaction).

    Args:
        session: Session whose transaction every operation joins
        lock_strategy: "row" upserts the plan lock row, "advisory" uses
            pg_advisory_xact_lock (PostgreSQL only)
        lock_timeout_ms: Lock wait bound applied with SET LOCAL on PostgreSQL
    """

    def __init__(
        self,
        session: AsyncSession,
        lock_strategy: LockStrategy = "row",
        lock_timeout_ms: int = 0,
    ):
        self.session = session
        self.lock_strategy = lock_strategy
        self.lock_timeout_ms = lock_timeout_ms

    @property
    def dialect(self) -> str:
        return self.session.bind.dialect.name

    # ---------------------------------------------------------------- postings
    async def get_posting(
        self, posting_id: int, *, for_update: bool = False
    ) -> Optional[JobPosting]:
        stmt = (
            select(JobPosting)
            .options(selectinload(JobPosting.highlight))
            .where(JobPosting.id == posting_id)
        )
        if for_update:
            stmt = stmt.with_for_update(of=JobPosting)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_posting(self, posting: JobPosting) -> JobPosting:
        self.session.add(posting)
        await self.session.flush()
        return posting

    async def count_active_postings(
        self, owner_id: int, exclude_posting_id: Optional[int] = None
    ) -> int:
        """Count the owner's postings in an active status."""
        stmt = (
            select(func.count())
            .select_from(JobPosting)
            .where(
                JobPosting.owner_id == owner_id,
                JobPosting.status.in_(ACTIVE_STATUSES),
            )
        )
        if exclude_posting_id is not None:
            stmt = stmt.where(JobPosting.id != exclude_posting_id)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def code_exists(self, code: str) -> bool:
        result = await self.session.execute(
            select(JobPosting.id).where(JobPosting.code == code).limit(1)
        )
        return result.scalar_one_or_none() is not None

    # ------------------------------------------------------------------- plans
    async def get_plan(self, plan_id: int) -> Optional[Plan]:
        return await self.session.get(Plan, plan_id)

    # ------------------------------------------------------------- allocations
    async def add_allocation(
        self, posting: JobPosting, allocation: HighlightAllocation
    ) -> HighlightAllocation:
        posting.highlight = allocation
        self.session.add(allocation)
        await self.session.flush()
        return allocation

    async def count_active_allocations(
        self, plan_id: int, exclude_posting_id: Optional[int] = None
    ) -> int:
        """Count allocations of a plan that currently consume quota."""
        stmt = (
            select(func.count())
            .select_from(HighlightAllocation)
            .join(JobPosting, HighlightAllocation.posting_id == JobPosting.id)
            .where(
                HighlightAllocation.plan_id == plan_id,
                HighlightAllocation.active.is_(True),
                JobPosting.status.in_(ACTIVE_STATUSES),
            )
        )
        if exclude_posting_id is not None:
            stmt = stmt.where(HighlightAllocation.posting_id != exclude_posting_id)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    # ----------------------------------------------------------------- locking
    async def lock_plan(self, plan_id: int) -> None:
        """
        Serialize highlight changes for a plan until the transaction ends.

        Must run inside the transaction that counts usage and writes the
        allocation.
        """
        dialect = self.dialect

        if dialect == "postgresql" and self.lock_timeout_ms:
            await self.session.execute(
                text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}")
            )

        if self.lock_strategy == "advisory":
            if dialect == "postgresql":
                await self.session.execute(
                    select(
                        func.pg_advisory_xact_lock(ADVISORY_LOCK_NAMESPACE, plan_id)
                    )
                )
                return
            logger.warning(
                f"Advisory locks unavailable on {dialect}, using plan lock row "
                f"for plan {plan_id}"
            )

        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert(PlanHighlightLock).values(
                plan_id=plan_id, version=1, updated_at=now()
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[PlanHighlightLock.plan_id],
                set_={
                    "version": PlanHighlightLock.version + 1,
                    "updated_at": now(),
                },
            )
            await self.session.execute(stmt)
            return

        # Generic path: create the row once, then hold it with FOR UPDATE
        result = await self.session.execute(
            select(PlanHighlightLock)
            .where(PlanHighlightLock.plan_id == plan_id)
            .with_for_update()
        )
        lock_row = result.scalar_one_or_none()
        if lock_row is None:
            lock_row = PlanHighlightLock(plan_id=plan_id, version=0)
            self.session.add(lock_row)
        lock_row.version += 1
        lock_row.updated_at = now()
        await self.session.flush()
