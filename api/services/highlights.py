"""
Plan quota enforcement.

A plan grants a fixed number of simultaneously highlighted postings and,
optionally, caps how many postings may be in an active status at once.
Usage is derived at query time: an allocation consumes quota while it is
active and its posting is in one of the active statuses. Every check runs
under the plan lock inside the transaction that writes the posting, so
concurrent requests against the same plan are serialized by the database
rather than by process memory.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from core.utils.datetime import now
from database.models.highlights import HighlightAllocation
from database.models.jobs import JobPosting
from database.store import PostingStore
from api.services.errors import PlanNotEligible, PostingQuotaExceeded, QuotaExceeded
from api.services.plans import PlanInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HighlightUsage:
    """Quota usage of a plan at read time."""

    plan_id: int
    limit: int
    used: int

    @property
    def available(self) -> int:
        return max(0, self.limit - self.used)


@dataclass(frozen=True)
class PostingUsage:
    """Active postings of a plan's owner at read time. A null limit is unlimited."""

    plan_id: int
    limit: Optional[int]
    used: int

    @property
    def available(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)


class QuotaGuard:
    """Accepts or rejects writes that consume plan quota."""

    async def assert_can_publish(
        self,
        store: PostingStore,
        plan_id: int,
        owner_id: int,
        exclude_posting_id: Optional[int] = None,
    ) -> Optional[int]:
        """
        Check that one more posting fits in the plan's active posting limit.

        Args:
            store: Store bound to the write transaction
            plan_id: Owner's active plan
            owner_id: Owner whose active postings are counted
            exclude_posting_id: Posting being moved into an active status

        Returns:
            Active postings before the write, or None when the plan sets no limit

        Raises:
            PostingQuotaExceeded: The owner already has `posting_quota`
                postings in an active status
        """
        plan = await store.get_plan(plan_id)
        if plan is None or plan.posting_quota is None:
            return None

        await store.lock_plan(plan_id)
        used = await store.count_active_postings(owner_id, exclude_posting_id)
        limit = plan.posting_quota
        if used >= limit:
            logger.warning(
                f"Posting limit reached for plan {plan_id}: used={used} limit={limit}"
            )
            raise PostingQuotaExceeded(plan_id=plan_id, limit=limit, used=used)
        return used

    async def assert_can_activate(
        self,
        store: PostingStore,
        plan_id: int,
        exclude_posting_id: Optional[int] = None,
    ) -> int:
        """
        Check that one more highlight fits in the plan's quota.

        Takes the plan lock first; the lock is held until the surrounding
        transaction ends, so the count stays valid until the allocation
        write commits.

        Args:
            store: Store bound to the write transaction
            plan_id: Plan whose quota would be consumed
            exclude_posting_id: Posting already holding an allocation
                being moved or re-counted

        Returns:
            Usage before the activation

        Raises:
            PlanNotEligible: Plan is missing or its quota is null or <= 0
            QuotaExceeded: Usage already reached the quota
        """
        plan = await store.get_plan(plan_id)
        if plan is None or not plan.offers_highlight:
            logger.info(f"Highlight refused: plan {plan_id} has no highlight benefit")
            raise PlanNotEligible(plan_id)

        await store.lock_plan(plan_id)
        used = await store.count_active_allocations(plan_id, exclude_posting_id)
        limit = plan.highlight_quota
        if used >= limit:
            logger.warning(
                f"Highlight quota exceeded for plan {plan_id}: used={used} limit={limit}"
            )
            raise QuotaExceeded(plan_id=plan_id, limit=limit, used=used)
        return used


class HighlightStateManager:
    """
    Inactive/Active state machine of a posting's highlight.

    Args:
        guard: Quota guard consulted on every transition that may add usage
    """

    def __init__(self, guard: Optional[QuotaGuard] = None):
        self.guard = guard or QuotaGuard()

    @staticmethod
    def is_active(posting: JobPosting) -> bool:
        return posting.highlight is not None and posting.highlight.active

    async def activate(
        self, store: PostingStore, posting: JobPosting, plan_id: int
    ) -> HighlightAllocation:
        """Inactive -> Active. Creates the allocation on first activation."""
        await self.guard.assert_can_activate(store, plan_id, exclude_posting_id=posting.id)

        timestamp = now()
        allocation = posting.highlight
        if allocation is None:
            allocation = HighlightAllocation(
                plan_id=plan_id,
                active=True,
                activated_at=timestamp,
                deactivated_at=None,
            )
            await store.add_allocation(posting, allocation)
        else:
            allocation.plan_id = plan_id
            allocation.active = True
            allocation.activated_at = timestamp
            allocation.deactivated_at = None

        logger.info(f"Highlight activated for posting {posting.id} on plan {plan_id}")
        return allocation

    async def deactivate(self, store: PostingStore, posting: JobPosting) -> bool:
        """
        Active -> Inactive. Never checks quota.

        Returns:
            False when the highlight was already inactive (nothing written)
        """
        if not self.is_active(posting):
            return False

        allocation = posting.highlight
        allocation.active = False
        allocation.deactivated_at = now()
        logger.info(
            f"Highlight deactivated for posting {posting.id} on plan {allocation.plan_id}"
        )
        return True

    async def reassign(
        self, store: PostingStore, posting: JobPosting, new_plan_id: int
    ) -> HighlightAllocation:
        """Active -> Active on another plan. Fails without moving anything."""
        allocation = posting.highlight
        await self.guard.assert_can_activate(
            store, new_plan_id, exclude_posting_id=posting.id
        )

        previous_plan_id = allocation.plan_id
        allocation.plan_id = new_plan_id
        logger.info(
            f"Highlight of posting {posting.id} moved from plan {previous_plan_id} "
            f"to plan {new_plan_id}"
        )
        return allocation

    async def reconcile(
        self,
        store: PostingStore,
        posting: JobPosting,
        plan: Optional[PlanInfo],
        *,
        plan_checked: bool = False,
        reentering: bool = False,
    ) -> None:
        """
        Bring the allocation in line with the posting after a write.

        Args:
            store: Store bound to the write transaction
            posting: Posting with the requested changes already applied
            plan: Owner's active plan, when it was looked up
            plan_checked: Whether the plan lookup ran for this write
            reentering: Posting moved from a non-counting status into an
                active status, so an active allocation starts counting again
        """
        if not posting.highlight_requested:
            await self.deactivate(store, posting)
            return

        if not self.is_active(posting):
            if plan is None:
                raise PlanNotEligible()
            await self.activate(store, posting, plan.plan_id)
            return

        allocation = posting.highlight
        if plan_checked and plan is None:
            raise PlanNotEligible()
        if plan is not None and not plan.eligible:
            raise PlanNotEligible(plan.plan_id)
        if plan is not None and plan.plan_id != allocation.plan_id:
            await self.reassign(store, posting, plan.plan_id)
        elif reentering:
            await self.guard.assert_can_activate(
                store, allocation.plan_id, exclude_posting_id=posting.id
            )

    async def usage(self, store: PostingStore, plan_id: int) -> Optional[HighlightUsage]:
        """Read usage without taking the plan lock."""
        plan = await store.get_plan(plan_id)
        if plan is None:
            return None
        used = await store.count_active_allocations(plan_id)
        limit = plan.highlight_quota if plan.offers_highlight else 0
        return HighlightUsage(plan_id=plan_id, limit=limit, used=used)
