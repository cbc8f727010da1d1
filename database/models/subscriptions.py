from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    BigInteger,
    DateTime,
    func,
    Enum as SQLEnum,
    Integer,
    Index,
)
from database.engine import Base, BigIntegerPK
from core.utils.datetime import now
from enum import Enum as PyEnum
from datetime import datetime


# ==================== Enums ===================== #
class PlanStatus(str, PyEnum):
    """Commercial plan status options."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# ==================== Plan Model ===================== #
class Plan(Base):
    """
    Commercial plan subscribed by a company user.
    The posting write path enforces its active posting and highlight
    limits; the plan is read-only from there.
    """

    __tablename__: str = "plans"
    id: Mapped[int] = mapped_column(
        BigIntegerPK, primary_key=True, nullable=False, autoincrement=True
    )
    owner_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )  # the subscriber, usually a company account
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[PlanStatus] = mapped_column(
        SQLEnum(PlanStatus, native_enum=False, length=50),
        nullable=False,
        default=PlanStatus.ACTIVE,
    )

    # Feature limits
    highlight_quota: Mapped[int | None] = mapped_column(
        Integer
    )  # null or <= 0 means highlighting is not part of the plan
    posting_quota: Mapped[int | None] = mapped_column(
        Integer
    )  # postings in an active status at once, null means unlimited

    # Validity window
    starts_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

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

    __table_args__ = (Index("idx_plans_owner_status", "owner_id", "status"),)

    @property
    def offers_highlight(self) -> bool:
        return self.highlight_quota is not None and self.highlight_quota > 0
