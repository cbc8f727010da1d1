"""
Job posting endpoints.

Create, update and read job postings. Highlight activation is driven by
the `highlight_requested` flag and limited by the owner's plan quota.
"""

from fastapi import APIRouter, Depends, Path, status

from api.dependencies import get_posting_service
from api.schemas.common import ErrorResponse
from api.schemas.postings import PostingCreate, PostingResponse, PostingUpdate
from api.services.postings import PostingService

router = APIRouter(prefix="/postings", tags=["Postings"])

WRITE_ERRORS = {
    403: {"model": ErrorResponse, "description": "Plan does not include highlighted postings"},
    409: {"model": ErrorResponse, "description": "Highlight quota or active posting limit reached"},
    422: {"model": ErrorResponse, "description": "Invalid posting data"},
}


@router.post(
    "",
    response_model=PostingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Job Posting",
    responses={
        **WRITE_ERRORS,
        503: {"model": ErrorResponse, "description": "No unique code available, retry"},
    },
)
async def create_posting(
    payload: PostingCreate,
    service: PostingService = Depends(get_posting_service),
):
    """Create a job posting with a unique code, highlighting it when requested."""
    return await service.create(payload)


@router.patch(
    "/{posting_id}",
    response_model=PostingResponse,
    summary="Update Job Posting",
    responses={**WRITE_ERRORS, 404: {"model": ErrorResponse, "description": "Posting not found"}},
)
async def update_posting(
    payload: PostingUpdate,
    posting_id: int = Path(..., description="Posting ID"),
    service: PostingService = Depends(get_posting_service),
):
    """Apply a partial update; the highlight follows status and flag changes."""
    return await service.update(posting_id, payload)


@router.get(
    "/{posting_id}",
    response_model=PostingResponse,
    summary="Get Job Posting",
    responses={404: {"model": ErrorResponse, "description": "Posting not found"}},
)
async def get_posting(
    posting_id: int = Path(..., description="Posting ID"),
    service: PostingService = Depends(get_posting_service),
):
    """Retrieve a job posting with its highlight state."""
    return await service.get(posting_id)
