"""Job posting write path: create and update with highlight quota checks."""

from typing import Any, Optional, Type, TypeVar, Union
import logging

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings
from core.utils.datetime import now
from database.engine import AsyncSessionLocal
from database.models.jobs import ACTIVE_STATUSES, JobPosting, JobPostingStatus
from database.store import PostingStore
from api.schemas.postings import PostingCreate, PostingUpdate
from api.services.codes import CodeGenerator
from api.services.errors import NotFound, PlanNotEligible, ValidationError
from api.services.highlights import (
    HighlightStateManager,
    HighlightUsage,
    PostingUsage,
    QuotaGuard,
)
from api.services.plans import DatabasePlanLookup, PlanInfo, PlanLookup

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _validate(schema: Type[SchemaT], data: Union[SchemaT, dict[str, Any]]) -> SchemaT:
    """Coerce raw input into a schema, mapping failures to ValidationError."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        raise ValidationError("Invalid job posting data", errors=errors) from exc


class PostingService:
    """
    Create/update orchestration for job postings.

    Each call runs in one short transaction. Plan limit checks, highlight
    transitions and the posting write commit or roll back together.

    Args:
        session_factory: Factory for the write sessions
        plan_lookup: Resolves the owner's active plan
        code_generator: Produces unique posting codes
        highlights: Highlight state machine
        quota_guard: Active posting limit check, defaults to the guard
            used by the highlight state machine
        lock_strategy: Plan lock strategy passed to the store
        lock_timeout_ms: Plan lock wait bound passed to the store
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        plan_lookup: Optional[PlanLookup] = None,
        code_generator: Optional[CodeGenerator] = None,
        highlights: Optional[HighlightStateManager] = None,
        quota_guard: Optional[QuotaGuard] = None,
        lock_strategy: Optional[str] = None,
        lock_timeout_ms: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.plan_lookup = plan_lookup or DatabasePlanLookup(session_factory)
        self.code_generator = code_generator or CodeGenerator()
        self.highlights = highlights or HighlightStateManager()
        self.quota_guard = quota_guard or self.highlights.guard
        self.lock_strategy = lock_strategy or settings.highlight_lock_strategy
        self.lock_timeout_ms = (
            settings.highlight_lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms
        )

    def _store(self, session: AsyncSession) -> PostingStore:
        return PostingStore(
            session,
            lock_strategy=self.lock_strategy,
            lock_timeout_ms=self.lock_timeout_ms,
        )

    async def create(self, data: Union[PostingCreate, dict[str, Any]]) -> JobPosting:
        """
        Create a job posting, activating its highlight when requested.

        Raises:
            ValidationError: Invalid input
            PlanNotEligible: Highlight requested without a plan granting it
            PostingQuotaExceeded: Plan's active posting limit already reached
            QuotaExceeded: Plan quota already used up
            CodeGenerationExhausted: No unique code could be generated
        """
        payload = _validate(PostingCreate, data)
        counts = payload.status in ACTIVE_STATUSES

        plan: Optional[PlanInfo] = None
        if payload.highlight_requested or counts:
            plan = await self.plan_lookup.find_active_plan(payload.owner_id)
        if payload.highlight_requested:
            if plan is None:
                raise PlanNotEligible()
            if not plan.eligible:
                raise PlanNotEligible(plan.plan_id)

        async with self.session_factory() as session:
            async with session.begin():
                store = self._store(session)
                if counts and plan is not None:
                    await self.quota_guard.assert_can_publish(
                        store, plan.plan_id, payload.owner_id
                    )
                code = await self.code_generator.ensure_unique_code(store.code_exists)
                posting = JobPosting(
                    code=code,
                    owner_id=payload.owner_id,
                    title=payload.title,
                    description=payload.description,
                    status=payload.status,
                    highlight_requested=payload.highlight_requested,
                    published_at=now() if payload.status == JobPostingStatus.PUBLISHED else None,
                    highlight=None,
                )
                await store.add_posting(posting)
                await self.highlights.reconcile(store, posting, plan, plan_checked=True)

        logger.info(
            f"Created job posting {posting.id} ({posting.code}) for owner {posting.owner_id}"
        )
        return posting

    async def update(
        self, posting_id: int, data: Union[PostingUpdate, dict[str, Any]]
    ) -> JobPosting:
        """
        Apply a partial update and reconcile the highlight allocation.

        The owner's plan is looked up on the write session when the posting
        enters an active status, when the highlight has to be activated or is
        explicitly requested again, or when the posting changes owner. An
        active highlight on a different plan is then moved to it.

        Raises:
            NotFound: Unknown posting id
            ValidationError: Invalid input or nothing to update
            PlanNotEligible: Highlight requested without a plan granting it
            PostingQuotaExceeded: Plan's active posting limit already reached
            QuotaExceeded: Plan quota already used up
        """
        payload = _validate(PostingUpdate, data)
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        async with self.session_factory() as session:
            async with session.begin():
                store = self._store(session)
                posting = await store.get_posting(posting_id, for_update=True)
                if posting is None:
                    raise NotFound(posting_id)

                previous_status = posting.status
                owner_changed = (
                    "owner_id" in changes and changes["owner_id"] != posting.owner_id
                )
                for field, value in changes.items():
                    setattr(posting, field, value)
                if posting.status == JobPostingStatus.PUBLISHED and posting.published_at is None:
                    posting.published_at = now()

                reentering = (
                    previous_status not in ACTIVE_STATUSES
                    and posting.status in ACTIVE_STATUSES
                )
                starts_counting = posting.status in ACTIVE_STATUSES and (
                    reentering or owner_changed
                )
                highlight_lookup = posting.highlight_requested and (
                    not self.highlights.is_active(posting)
                    or owner_changed
                    or changes.get("highlight_requested") is True
                )

                plan: Optional[PlanInfo] = None
                if starts_counting or highlight_lookup:
                    plan = await self.plan_lookup.find_active_plan(
                        posting.owner_id, session=session
                    )
                if starts_counting and plan is not None:
                    await self.quota_guard.assert_can_publish(
                        store, plan.plan_id, posting.owner_id, exclude_posting_id=posting.id
                    )

                await self.highlights.reconcile(
                    store,
                    posting,
                    plan if highlight_lookup else None,
                    plan_checked=highlight_lookup,
                    reentering=reentering,
                )

        logger.info(f"Updated job posting {posting.id}: {sorted(changes)}")
        return posting

    async def get(self, posting_id: int) -> JobPosting:
        """Get a posting with its highlight allocation."""
        async with self.session_factory() as session:
            posting = await self._store(session).get_posting(posting_id)
        if posting is None:
            raise NotFound(posting_id)
        return posting

    async def highlight_usage(self, plan_id: int) -> HighlightUsage:
        """Current highlight usage of a plan, read without the plan lock."""
        async with self.session_factory() as session:
            usage = await self.highlights.usage(self._store(session), plan_id)
        if usage is None:
            raise NotFound(plan_id, resource="Plan")
        return usage

    async def posting_usage(self, plan_id: int) -> PostingUsage:
        """Active postings of the plan owner against its limit, read without the plan lock."""
        async with self.session_factory() as session:
            store = self._store(session)
            plan = await store.get_plan(plan_id)
            if plan is None:
                raise NotFound(plan_id, resource="Plan")
            used = await store.count_active_postings(plan.owner_id)
        return PostingUsage(plan_id=plan_id, limit=plan.posting_quota, used=used)
