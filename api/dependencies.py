"""FastAPI dependencies for dependency injection."""

from functools import lru_cache

from api.services.postings import PostingService


@lru_cache
def get_posting_service() -> PostingService:
    """Posting service bound to the application engine."""
    return PostingService()
