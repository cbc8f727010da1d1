"""Errors raised by the posting write path."""

from typing import Any, Optional


class PostingError(Exception):
    """Base class for posting errors surfaced to API callers."""

    code: str = "POSTING_ERROR"
    status_code: int = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(PostingError):
    """Raised when the caller supplied invalid posting data."""

    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None):
        super().__init__(message, {"errors": errors} if errors else None)
        self.errors = errors or []


class NotFound(PostingError):
    """Raised when a posting (or plan) id does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource_id: int, resource: str = "Job posting"):
        super().__init__(f"{resource} {resource_id} not found", {"id": resource_id})
        self.resource_id = resource_id
        self.resource = resource


class PlanNotEligible(PostingError):
    """Raised when highlighting is not a benefit of the caller's plan."""

    code = "PLAN_NOT_ELIGIBLE"
    status_code = 403

    def __init__(self, plan_id: Optional[int] = None):
        if plan_id is None:
            message = "No active plan with highlight benefit"
        else:
            message = f"Plan {plan_id} does not include highlighted postings"
        super().__init__(message, {"plan_id": plan_id})
        self.plan_id = plan_id


class QuotaExceeded(PostingError):
    """Raised when the plan's highlight quota is already fully used."""

    code = "QUOTA_EXCEEDED"
    status_code = 409

    def __init__(self, plan_id: int, limit: int, used: int):
        super().__init__(
            f"Highlight quota reached for plan {plan_id} ({used}/{limit})",
            {"plan_id": plan_id, "limit": limit, "used": used},
        )
        self.plan_id = plan_id
        self.limit = limit
        self.used = used


class PostingQuotaExceeded(PostingError):
    """Raised when the plan's limit of active postings is already reached."""

    code = "POSTING_QUOTA_EXCEEDED"
    status_code = 409

    def __init__(self, plan_id: int, limit: int, used: int):
        super().__init__(
            f"Active posting limit reached for plan {plan_id} ({used}/{limit})",
            {"plan_id": plan_id, "limit": limit, "used": used},
        )
        self.plan_id = plan_id
        self.limit = limit
        self.used = used


class CodeGenerationExhausted(PostingError):
    """Raised when no unique posting code was found; safe to retry."""

    code = "CODE_GENERATION_EXHAUSTED"
    status_code = 503

    def __init__(self, attempts: int):
        super().__init__(
            f"Could not generate a unique posting code after {attempts} attempts",
            {"attempts": attempts, "retryable": True},
        )
        self.attempts = attempts
