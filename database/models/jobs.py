"""
Jobs Module

Job postings with a short public code, lifecycle status and the
highlight (premium placement) request flag.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    BigInteger,
    DateTime,
    func,
    Text,
    Enum as SQLEnum,
    Index,
)
from database.engine import Base, BigIntegerPK
from core.utils.datetime import now
from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.highlights import HighlightAllocation


# ==================== Job Enums ===================== #
class JobPostingStatus(str, PyEnum):
    """Job posting lifecycle status."""

    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"
    PAUSED = "paused"
    EXPIRED = "expired"
    CLOSED = "closed"


# Statuses counted against the plan's posting limit and highlight quota
ACTIVE_STATUSES: frozenset[JobPostingStatus] = frozenset(
    {
        JobPostingStatus.UNDER_REVIEW,
        JobPostingStatus.PUBLISHED,
        JobPostingStatus.PAUSED,
    }
)


# ==================== Job Posting Model ===================== #
class JobPosting(Base):
    """
    Job posting owned by a company user.
    The highlight allocation binds a highlighted posting to the plan
    whose quota it consumes.
    """

    __tablename__ = "job_postings"

    id: Mapped[int] = mapped_column(
        BigIntegerPK,
        primary_key=True,
        nullable=False,
        autoincrement=True,
    )
    code: Mapped[str] = mapped_column(
        String(12), unique=True, nullable=False, index=True
    )  # Public short code, never reused
    owner_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    # Basic info
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    # Lifecycle
    status: Mapped[JobPostingStatus] = mapped_column(
        SQLEnum(JobPostingStatus, native_enum=False, length=50),
        nullable=False,
        default=JobPostingStatus.UNDER_REVIEW,
        index=True,
    )
    highlight_requested: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

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
    highlight: Mapped["HighlightAllocation | None"] = relationship(
        "HighlightAllocation", back_populates="posting", uselist=False
    )

    __table_args__ = (
        Index("idx_job_postings_owner_status", "owner_id", "status"),
    )
