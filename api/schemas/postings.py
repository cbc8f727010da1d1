"""Job posting API schemas."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from api.schemas.common import TimestampMixin
from database.models.jobs import JobPostingStatus


class PostingCreate(BaseModel):
    """Schema for creating a job posting."""

    owner_id: int = Field(..., gt=0, description="Company account owning the posting")
    title: str = Field(..., min_length=1, max_length=255, description="Posting title")
    description: Optional[str] = Field(None, max_length=20000, description="Optional description")
    status: JobPostingStatus = Field(
        default=JobPostingStatus.UNDER_REVIEW, description="Initial lifecycle status"
    )
    highlight_requested: bool = Field(
        default=False, description="Request premium placement using the plan quota"
    )

    @field_validator("title", mode="before")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from the title."""
        if isinstance(v, str):
            return v.strip()
        return v


class PostingUpdate(BaseModel):
    """Schema for a partial job posting update. Only set fields are applied."""

    owner_id: Optional[int] = Field(None, gt=0)
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=20000)
    status: Optional[JobPostingStatus] = None
    highlight_requested: Optional[bool] = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_whitespace(cls, v: Optional[str]) -> Optional[str]:
        """Strip whitespace from the title."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("owner_id", "title", "status", "highlight_requested")
    @classmethod
    def reject_null(cls, v):
        """Only description may be cleared with null."""
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class HighlightInfo(BaseModel):
    """Highlight allocation state of a posting."""

    model_config = ConfigDict(from_attributes=True)

    plan_id: int
    active: bool
    activated_at: datetime
    deactivated_at: Optional[datetime] = None


class PostingResponse(TimestampMixin):
    """Schema for job posting responses."""

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "code": "K7Q2ZD",
                "owner_id": 42,
                "title": "Backend Developer",
                "description": None,
                "status": "published",
                "highlight_requested": True,
                "highlight": {
                    "plan_id": 3,
                    "active": True,
                    "activated_at": "2026-01-13T12:00:00Z",
                    "deactivated_at": None,
                },
                "published_at": "2026-01-13T12:00:00Z",
                "created_at": "2026-01-13T12:00:00Z",
                "updated_at": "2026-01-13T12:00:00Z",
            }
        },
    )

    id: int
    code: str
    owner_id: int
    title: str
    description: Optional[str] = None
    status: JobPostingStatus
    highlight_requested: bool
    highlight: Optional[HighlightInfo] = None
    published_at: Optional[datetime] = None


class HighlightUsageResponse(BaseModel):
    """Highlight quota usage of a plan."""

    plan_id: int
    limit: int
    used: int
    available: int


class PostingUsageResponse(BaseModel):
    """Active postings of a plan's owner against the plan limit."""

    plan_id: int
    limit: Optional[int] = Field(None, description="Null when the plan sets no limit")
    used: int
    available: Optional[int] = None
