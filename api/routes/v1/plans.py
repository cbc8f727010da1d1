"""Plan usage endpoints."""

from fastapi import APIRouter, Depends, Path

from api.dependencies import get_posting_service
from api.schemas.common import ErrorResponse
from api.schemas.postings import HighlightUsageResponse, PostingUsageResponse
from api.services.postings import PostingService

router = APIRouter(prefix="/plans", tags=["Plans"])


@router.get(
    "/{plan_id}/highlights",
    response_model=HighlightUsageResponse,
    summary="Get Highlight Usage",
    responses={404: {"model": ErrorResponse, "description": "Plan not found"}},
)
async def get_highlight_usage(
    plan_id: int = Path(..., description="Plan ID"),
    service: PostingService = Depends(get_posting_service),
):
    """Highlight quota, current usage and remaining slots of a plan."""
    usage = await service.highlight_usage(plan_id)
    return HighlightUsageResponse(
        plan_id=usage.plan_id,
        limit=usage.limit,
        used=usage.used,
        available=usage.available,
    )


@router.get(
    "/{plan_id}/postings",
    response_model=PostingUsageResponse,
    summary="Get Active Posting Usage",
    responses={404: {"model": ErrorResponse, "description": "Plan not found"}},
)
async def get_posting_usage(
    plan_id: int = Path(..., description="Plan ID"),
    service: PostingService = Depends(get_posting_service),
):
    """Active posting limit of a plan and how many postings its owner has active."""
    usage = await service.posting_usage(plan_id)
    return PostingUsageResponse(
        plan_id=usage.plan_id,
        limit=usage.limit,
        used=usage.used,
        available=usage.available,
    )
