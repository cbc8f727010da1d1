"""
Highlights Module

Allocation records binding a highlighted job posting to the plan whose
quota it consumes, and the per-plan lock row serializing activations.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    Boolean,
    BigInteger,
    ForeignKey,
    DateTime,
    Integer,
    func,
    Index,
)
from database.engine import Base, BigIntegerPK
from core.utils.datetime import now
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.jobs import JobPosting


# ==================== Highlight Allocation ===================== #
class HighlightAllocation(Base):
    """
    One row per posting, created lazily on first activation.
    Deactivation and plan reassignment update the row in place;
    rows are never deleted.
    """

    __tablename__ = "highlight_allocations"

    id: Mapped[int] = mapped_column(
        BigIntegerPK, primary_key=True, nullable=False, autoincrement=True
    )
    posting_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("job_postings.id"),
        nullable=False,
        unique=True,
    )
    plan_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("plans.id"), nullable=False, index=True
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    activated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now,
        server_default=func.now(),
        onupdate=now,
    )

    # Relationships
    posting: Mapped["JobPosting"] = relationship(
        "JobPosting", back_populates="highlight"
    )

    __table_args__ = (
        Index("idx_highlight_allocations_plan_active", "plan_id", "active"),
    )


# ==================== Plan Highlight Lock ===================== #
class PlanHighlightLock(Base):
    """
    Per-plan aggregate row. Writing it inside a transaction serializes
    every quota check for that plan until commit or rollback.
    """

    __tablename__ = "plan_highlight_locks"

    plan_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("plans.id"), primary_key=True, autoincrement=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now,
        server_default=func.now(),
    )
