"""Plan lookup for the posting write path."""

from dataclasses import dataclass
from typing import Optional, Protocol
import logging

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.utils.datetime import now
from database.engine import AsyncSessionLocal
from database.models.subscriptions import Plan, PlanStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanInfo:
    """Active plan of a company account, as seen by the quota guard."""

    plan_id: int
    highlight_quota: Optional[int]
    eligible: bool
    posting_quota: Optional[int] = None

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanInfo":
        return cls(
            plan_id=plan.id,
            highlight_quota=plan.highlight_quota,
            eligible=plan.offers_highlight,
            posting_quota=plan.posting_quota,
        )


class PlanLookup(Protocol):
    async def find_active_plan(
        self, owner_id: int, session: Optional[AsyncSession] = None
    ) -> Optional[PlanInfo]: ...


class DatabasePlanLookup:
    """Resolve the active plan from the plans table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory

    async def find_active_plan(
        self, owner_id: int, session: Optional[AsyncSession] = None
    ) -> Optional[PlanInfo]:
        """
        Get the owner's currently active plan.

        A plan is active when its status is active and the current time is
        inside its validity window. The most recently started one wins.

        Args:
            owner_id: Subscriber account id
            session: Session of an open write transaction. The query then
                runs on its connection instead of checking out another one.

        Returns:
            PlanInfo or None when the owner has no active plan
        """
        current = now()
        stmt = (
            select(Plan)
            .where(
                Plan.owner_id == owner_id,
                Plan.status == PlanStatus.ACTIVE,
                Plan.starts_at <= current,
                or_(Plan.ends_at.is_(None), Plan.ends_at > current),
            )
            .order_by(Plan.starts_at.desc(), Plan.id.desc())
            .limit(1)
        )
        if session is not None:
            plan = (await session.execute(stmt)).scalar_one_or_none()
        else:
            async with self.session_factory() as own_session:
                plan = (await own_session.execute(stmt)).scalar_one_or_none()

        if plan is None:
            logger.info(f"No active plan for owner {owner_id}")
            return None
        return PlanInfo.from_plan(plan)
