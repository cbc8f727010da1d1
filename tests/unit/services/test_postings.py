"""
Tests for the posting service write path.
Covers highlight activation through create/update, quota denial,
the active posting limit, reassignment between plans and input validation.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from api.services.codes import CodeGenerator
from api.services.errors import (
    NotFound,
    PlanNotEligible,
    PostingQuotaExceeded,
    QuotaExceeded,
    ValidationError,
)
from api.services.postings import PostingService
from core.utils.datetime import now
from database.models.jobs import JobPosting, JobPostingStatus
from database.models.subscriptions import Plan, PlanStatus
from database.store import PostingStore


async def _posting_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(JobPosting))


class _FixedCodeSource:
    def __init__(self, code: str):
        self.code = code

    def next_candidate(self) -> str:
        return self.code


class TestCreatePosting:
    """Test posting creation."""

    @pytest.mark.asyncio
    async def test_create_without_highlight(self, service, posting_payload):
        posting = await service.create(posting_payload())

        assert posting.id is not None
        assert len(posting.code) == 6
        assert posting.status == JobPostingStatus.PUBLISHED
        assert posting.published_at is not None
        assert posting.highlight is None

    @pytest.mark.asyncio
    async def test_create_under_review_is_not_published(self, service, posting_payload):
        posting = await service.create(posting_payload(status="under_review"))
        assert posting.published_at is None

    @pytest.mark.asyncio
    async def test_codes_are_unique(self, service, posting_payload):
        codes = {(await service.create(posting_payload())).code for _ in range(25)}
        assert len(codes) == 25

    @pytest.mark.asyncio
    async def test_create_with_highlight(self, service, make_plan, posting_payload):
        plan = await make_plan(highlight_quota=2)
        posting = await service.create(posting_payload(highlight_requested=True))

        assert posting.highlight is not None
        assert posting.highlight.active is True
        assert posting.highlight.plan_id == plan.id

    @pytest.mark.asyncio
    async def test_quota_exhaustion_sequential(
        self, service, session_factory, make_plan, posting_payload
    ):
        """Quota 2: the third highlighted posting is refused and not stored."""
        plan = await make_plan(highlight_quota=2)
        await service.create(posting_payload(title="X", highlight_requested=True))
        await service.create(posting_payload(title="Y", highlight_requested=True))

        with pytest.raises(QuotaExceeded) as exc_info:
            await service.create(posting_payload(title="Z", highlight_requested=True))

        assert exc_info.value.limit == 2
        assert exc_info.value.used == 2
        assert exc_info.value.plan_id == plan.id
        assert await _posting_count(session_factory) == 2

    @pytest.mark.asyncio
    async def test_highlight_without_plan(self, service, session_factory, posting_payload):
        with pytest.raises(PlanNotEligible):
            await service.create(posting_payload(highlight_requested=True))
        assert await _posting_count(session_factory) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quota", [None, 0])
    async def test_highlight_on_plan_without_benefit(
        self, service, make_plan, posting_payload, quota
    ):
        await make_plan(highlight_quota=quota)
        with pytest.raises(PlanNotEligible):
            await service.create(posting_payload(highlight_requested=True))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("plan_kwargs", [
        {"status": PlanStatus.SUSPENDED},
        {"ends_at": now() - timedelta(hours=1)},
        {"starts_at": now() + timedelta(days=1)},
    ])
    async def test_highlight_on_inactive_plan(
        self, service, make_plan, posting_payload, plan_kwargs
    ):
        await make_plan(highlight_quota=5, **plan_kwargs)
        with pytest.raises(PlanNotEligible):
            await service.create(posting_payload(highlight_requested=True))

    @pytest.mark.asyncio
    async def test_plan_of_another_owner_is_ignored(self, service, make_plan, posting_payload):
        await make_plan(owner_id=2, highlight_quota=5)
        with pytest.raises(PlanNotEligible):
            await service.create(posting_payload(owner_id=1, highlight_requested=True))

    @pytest.mark.asyncio
    async def test_drafts_do_not_consume_quota(self, service, make_plan, posting_payload):
        plan = await make_plan(highlight_quota=1)
        draft = await service.create(posting_payload(status="draft", highlight_requested=True))
        published = await service.create(posting_payload(highlight_requested=True))

        assert draft.highlight.active is True
        assert published.highlight.active is True
        assert (await service.highlight_usage(plan.id)).used == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload_overrides", [
        {"title": "   "},
        {"title": "x" * 256},
        {"owner_id": 0},
        {"status": "archived"},
    ])
    async def test_invalid_input(self, service, posting_payload, payload_overrides):
        with pytest.raises(ValidationError) as exc_info:
            await service.create(posting_payload(**payload_overrides))
        assert exc_info.value.errors
        assert exc_info.value.status_code == 422


    @pytest.mark.asyncio
    async def test_code_collision_at_insert_rolls_back(
        self, service, session_factory, make_plan, posting_payload
    ):
        """A code taken between the existence check and the insert fails the whole create."""
        plan = await make_plan(highlight_quota=1)
        existing = await service.create(posting_payload())
        racing = PostingService(
            session_factory=session_factory,
            code_generator=CodeGenerator(primary=_FixedCodeSource(existing.code)),
        )

        with patch.object(PostingStore, "code_exists", AsyncMock(return_value=False)):
            with pytest.raises(IntegrityError):
                await racing.create(posting_payload(title="Other", highlight_requested=True))

        assert await _posting_count(session_factory) == 1
        assert (await service.highlight_usage(plan.id)).used == 0


class TestUpdatePosting:
    """Test partial updates and highlight reconciliation."""

    @pytest.mark.asyncio
    async def test_update_fields(self, service, posting_payload):
        posting = await service.create(posting_payload(status="under_review"))
        updated = await service.update(
            posting.id, {"title": "  Senior Backend Developer ", "status": "published"}
        )

        assert updated.title == "Senior Backend Developer"
        assert updated.status == JobPostingStatus.PUBLISHED
        assert updated.published_at is not None

    @pytest.mark.asyncio
    async def test_request_highlight_on_update(self, service, make_plan, posting_payload):
        plan = await make_plan(highlight_quota=1)
        posting = await service.create(posting_payload())

        updated = await service.update(posting.id, {"highlight_requested": True})

        assert updated.highlight.active is True
        assert (await service.highlight_usage(plan.id)).used == 1

    @pytest.mark.asyncio
    async def test_unhighlight_frees_quota(self, service, make_plan, posting_payload):
        plan = await make_plan(highlight_quota=1)
        first = await service.create(posting_payload(highlight_requested=True))

        updated = await service.update(first.id, {"highlight_requested": False})
        assert updated.highlight.active is False

        second = await service.create(posting_payload(highlight_requested=True))
        assert second.highlight.active is True
        assert (await service.highlight_usage(plan.id)).used == 1

    @pytest.mark.asyncio
    async def test_repeated_request_is_a_noop(self, service, make_plan, posting_payload):
        """Asking again for a highlight the posting already holds does not double count."""
        plan = await make_plan(highlight_quota=1)
        posting = await service.create(posting_payload(highlight_requested=True))

        updated = await service.update(posting.id, {"highlight_requested": True})

        assert updated.highlight.plan_id == plan.id
        assert (await service.highlight_usage(plan.id)).used == 1

    @pytest.mark.asyncio
    async def test_reassign_on_owner_change(self, service, make_plan, posting_payload):
        """Highlighted posting moves from plan A (full) to plan B (empty)."""
        plan_a = await make_plan(owner_id=1, highlight_quota=1)
        plan_b = await make_plan(owner_id=2, highlight_quota=1)
        posting = await service.create(posting_payload(owner_id=1, highlight_requested=True))
        assert (await service.highlight_usage(plan_a.id)).used == 1

        updated = await service.update(posting.id, {"owner_id": 2})

        assert updated.highlight.plan_id == plan_b.id
        assert (await service.highlight_usage(plan_a.id)).used == 0
        assert (await service.highlight_usage(plan_b.id)).used == 1

    @pytest.mark.asyncio
    async def test_reassign_refused_when_target_full(self, service, make_plan, posting_payload):
        plan_a = await make_plan(owner_id=1, highlight_quota=1)
        await make_plan(owner_id=2, highlight_quota=1)
        await service.create(posting_payload(owner_id=2, highlight_requested=True))
        posting = await service.create(posting_payload(owner_id=1, highlight_requested=True))

        with pytest.raises(QuotaExceeded):
            await service.update(posting.id, {"owner_id": 2})

        reloaded = await service.get(posting.id)
        assert reloaded.owner_id == 1
        assert reloaded.highlight.plan_id == plan_a.id

    @pytest.mark.asyncio
    async def test_reentering_active_status_rechecks_quota(
        self, service, make_plan, posting_payload
    ):
        """A highlighted draft cannot be published once its plan is full."""
        await make_plan(highlight_quota=1)
        draft = await service.create(posting_payload(status="draft", highlight_requested=True))
        await service.create(posting_payload(highlight_requested=True))

        with pytest.raises(QuotaExceeded):
            await service.update(draft.id, {"status": "published"})

        reloaded = await service.get(draft.id)
        assert reloaded.status == JobPostingStatus.DRAFT
        assert reloaded.published_at is None

    @pytest.mark.asyncio
    async def test_reentering_with_free_slot(self, service, make_plan, posting_payload):
        plan = await make_plan(highlight_quota=1)
        draft = await service.create(posting_payload(status="draft", highlight_requested=True))

        updated = await service.update(draft.id, {"status": "published"})

        assert updated.status == JobPostingStatus.PUBLISHED
        assert (await service.highlight_usage(plan.id)).used == 1

    @pytest.mark.asyncio
    async def test_expired_posting_frees_quota(self, service, make_plan, posting_payload):
        plan = await make_plan(highlight_quota=1)
        posting = await service.create(posting_payload(highlight_requested=True))

        await service.update(posting.id, {"status": "expired"})
        other = await service.create(posting_payload(highlight_requested=True))

        assert other.highlight.active is True
        assert (await service.highlight_usage(plan.id)).used == 1

    @pytest.mark.asyncio
    async def test_rerequest_after_plan_lost(
        self, service, session_factory, make_plan, posting_payload
    ):
        plan = await make_plan(highlight_quota=1)
        posting = await service.create(posting_payload(highlight_requested=True))

        async with session_factory() as session:
            async with session.begin():
                stored = await session.get(Plan, plan.id)
                stored.status = PlanStatus.CANCELLED

        with pytest.raises(PlanNotEligible):
            await service.update(posting.id, {"highlight_requested": True})

    @pytest.mark.asyncio
    async def test_rerequest_after_quota_removed(
        self, service, session_factory, make_plan, posting_payload
    ):
        plan = await make_plan(highlight_quota=1)
        posting = await service.create(posting_payload(highlight_requested=True))

        async with session_factory() as session:
            async with session.begin():
                stored = await session.get(Plan, plan.id)
                stored.highlight_quota = 0

        with pytest.raises(PlanNotEligible) as exc_info:
            await service.update(posting.id, {"highlight_requested": True})
        assert exc_info.value.plan_id == plan.id

        # Edits that leave highlighting alone still go through
        updated = await service.update(posting.id, {"title": "Senior Backend Developer"})
        assert updated.title == "Senior Backend Developer"

    @pytest.mark.asyncio
    async def test_update_unknown_posting(self, service):
        with pytest.raises(NotFound) as exc_info:
            await service.update(12345, {"title": "Nope"})
        assert exc_info.value.resource_id == 12345

    @pytest.mark.asyncio
    async def test_empty_update(self, service, posting_payload):
        posting = await service.create(posting_payload())
        with pytest.raises(ValidationError):
            await service.update(posting.id, {})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["title", "status", "owner_id", "highlight_requested"])
    async def test_null_not_allowed(self, service, posting_payload, field):
        posting = await service.create(posting_payload())
        with pytest.raises(ValidationError) as exc_info:
            await service.update(posting.id, {field: None})
        assert exc_info.value.errors[0]["field"] == field

    @pytest.mark.asyncio
    async def test_description_can_be_cleared(self, service, posting_payload):
        posting = await service.create(posting_payload())
        updated = await service.update(posting.id, {"description": None})
        assert updated.description is None


class TestPostingQuota:
    """Test the plan's limit of postings in an active status."""

    @pytest.mark.asyncio
    async def test_create_beyond_limit(self, service, session_factory, make_plan, posting_payload):
        plan = await make_plan(posting_quota=2)
        await service.create(posting_payload())
        await service.create(posting_payload(status="under_review"))

        with pytest.raises(PostingQuotaExceeded) as exc_info:
            await service.create(posting_payload())

        error = exc_info.value
        assert (error.plan_id, error.limit, error.used) == (plan.id, 2, 2)
        assert exc_info.value.status_code == 409
        assert await _posting_count(session_factory) == 2

    @pytest.mark.asyncio
    async def test_highlighted_create_beyond_limit_takes_no_slot(
        self, service, make_plan, posting_payload
    ):
        plan = await make_plan(highlight_quota=2, posting_quota=1)
        await service.create(posting_payload())

        with pytest.raises(PostingQuotaExceeded):
            await service.create(posting_payload(highlight_requested=True))
        assert (await service.highlight_usage(plan.id)).used == 0

    @pytest.mark.asyncio
    async def test_drafts_do_not_count(self, service, make_plan, posting_payload):
        await make_plan(posting_quota=1)
        await service.create(posting_payload())
        draft = await service.create(posting_payload(status="draft"))

        with pytest.raises(PostingQuotaExceeded):
            await service.update(draft.id, {"status": "published"})

        stored = await service.get(draft.id)
        assert stored.status == JobPostingStatus.DRAFT
        assert stored.published_at is None

    @pytest.mark.asyncio
    async def test_closing_frees_a_slot(self, service, make_plan, posting_payload):
        await make_plan(posting_quota=1)
        first = await service.create(posting_payload())
        draft = await service.create(posting_payload(status="draft"))

        await service.update(first.id, {"status": "closed"})
        published = await service.update(draft.id, {"status": "published"})

        assert published.status == JobPostingStatus.PUBLISHED

    @pytest.mark.asyncio
    async def test_moving_between_active_statuses(self, service, make_plan, posting_payload):
        await make_plan(posting_quota=1)
        posting = await service.create(posting_payload(status="under_review"))

        updated = await service.update(posting.id, {"status": "published", "title": "Senior"})

        assert updated.status == JobPostingStatus.PUBLISHED

    @pytest.mark.asyncio
    async def test_owner_change_counts_against_new_plan(self, service, make_plan, posting_payload):
        await make_plan(owner_id=2, posting_quota=1)
        await service.create(posting_payload(owner_id=2))
        posting = await service.create(posting_payload(owner_id=1))

        with pytest.raises(PostingQuotaExceeded):
            await service.update(posting.id, {"owner_id": 2})
        assert (await service.get(posting.id)).owner_id == 1

    @pytest.mark.asyncio
    async def test_zero_limit_allows_only_drafts(self, service, make_plan, posting_payload):
        await make_plan(posting_quota=0)

        draft = await service.create(posting_payload(status="draft"))
        with pytest.raises(PostingQuotaExceeded):
            await service.create(posting_payload())
        assert draft.status == JobPostingStatus.DRAFT

    @pytest.mark.asyncio
    async def test_owner_without_plan_is_not_limited(self, service, posting_payload):
        postings = [await service.create(posting_payload()) for _ in range(3)]
        assert all(p.status == JobPostingStatus.PUBLISHED for p in postings)


class TestReadOperations:
    """Test get and usage reads."""

    @pytest.mark.asyncio
    async def test_get_unknown_posting(self, service):
        with pytest.raises(NotFound):
            await service.get(404)

    @pytest.mark.asyncio
    async def test_usage_of_unknown_plan(self, service):
        with pytest.raises(NotFound) as exc_info:
            await service.highlight_usage(77)
        assert exc_info.value.resource == "Plan"

    @pytest.mark.asyncio
    async def test_usage_of_plan_without_benefit(self, service, make_plan):
        plan = await make_plan(highlight_quota=None)
        usage = await service.highlight_usage(plan.id)
        assert (usage.limit, usage.used, usage.available) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_posting_usage(self, service, make_plan, posting_payload):
        plan = await make_plan(posting_quota=3)
        await service.create(posting_payload())
        await service.create(posting_payload(status="draft"))

        usage = await service.posting_usage(plan.id)

        assert (usage.limit, usage.used, usage.available) == (3, 1, 2)

    @pytest.mark.asyncio
    async def test_posting_usage_without_limit(self, service, make_plan, posting_payload):
        plan = await make_plan()
        await service.create(posting_payload())

        usage = await service.posting_usage(plan.id)

        assert (usage.limit, usage.used, usage.available) == (None, 1, None)

    @pytest.mark.asyncio
    async def test_posting_usage_of_unknown_plan(self, service):
        with pytest.raises(NotFound):
            await service.posting_usage(78)
