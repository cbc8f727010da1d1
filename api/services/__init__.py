"""
API Services Layer.

Posting write path: code generation, plan lookup and plan quota
enforcement, each running inside the caller's database transaction.
"""

from api.services.errors import (
    PostingError,
    ValidationError,
    NotFound,
    PlanNotEligible,
    QuotaExceeded,
    PostingQuotaExceeded,
    CodeGenerationExhausted,
)

from api.services.codes import (
    CodeGenerator,
    RandomCodeSource,
    FallbackCodeSource,
)

from api.services.plans import (
    PlanInfo,
    DatabasePlanLookup,
)

from api.services.highlights import (
    HighlightUsage,
    PostingUsage,
    QuotaGuard,
    HighlightStateManager,
)

from api.services.postings import PostingService

__all__ = [
    # Errors
    "PostingError",
    "ValidationError",
    "NotFound",
    "PlanNotEligible",
    "QuotaExceeded",
    "PostingQuotaExceeded",
    "CodeGenerationExhausted",
    # Codes
    "CodeGenerator",
    "RandomCodeSource",
    "FallbackCodeSource",
    # Plans
    "PlanInfo",
    "DatabasePlanLookup",
    # Highlights
    "HighlightUsage",
    "PostingUsage",
    "QuotaGuard",
    "HighlightStateManager",
    # Postings
    "PostingService",
]
