"""Common Pydantic schemas shared across the API."""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class TimestampMixin(BaseModel):
    """Mixin for timestamp fields."""

    created_at: datetime = Field(description="Timestamp when the resource was created")
    updated_at: datetime = Field(description="Timestamp when the resource was last updated")


class ErrorBody(BaseModel):
    """Error details inside the error envelope."""

    code: str = Field(description="Error code for programmatic handling")
    message: str = Field(description="Human readable error message")
    path: Optional[str] = None
    method: Optional[str] = None
    details: Optional[Any] = None
    request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response model."""

    error: ErrorBody
