import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

# Import services, schemas, and dependencies
from feedback_insights.db.session import get_db, StorageError
from feedback_insights.schemas.snippet import FilteredSnippetsResponse, SnippetTimelineResponse
from feedback_insights.services.snippet_service import SnippetService, get_snippet_service

# Configure logger for this module
logger = logging.getLogger(__name__)

# Create a new router for this module.
router = APIRouter()


@router.get(
    "/",
    response_model=FilteredSnippetsResponse,
    summary="Filter stored snippets",
    description="Lists stored quotes and summaries, newest first, optionally filtered by topic, original feedback date and a case-insensitive content search."
)
def filter_snippets(
    *,
    db: Session = Depends(get_db),
    topic: Optional[str] = Query(None, description="Topic name ('Pain Points') or key ('pain_points')."),
    date: Optional[str] = Query(None, description="Original feedback date, YYYY-MM-DD."),
    search: Optional[str] = Query(None, description="Case-insensitive text to look for in the snippet."),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    snippet_service: SnippetService = Depends(get_snippet_service)
):
    try:
        return snippet_service.filter_snippets(db, topic=topic, date=date, search=search, limit=limit, offset=offset)
    except ValueError as e:
        logger.warning(f"API: Invalid snippet filter: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        logger.error(f"API: Failed to filter snippets: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to filter snippets: {e}"
        )


@router.get(
    "/timeline",
    response_model=SnippetTimelineResponse,
    summary="Snippet timeline",
    description="Number of stored quotes per day and topic, using the original feedback date where known."
)
def read_snippet_timeline(
    *,
    db: Session = Depends(get_db),
    snippet_service: SnippetService = Depends(get_snippet_service)
):
    try:
        return snippet_service.snippets_timeline(db)
    except StorageError as e:
        logger.error(f"API: Failed to build snippet timeline: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to build snippet timeline: {e}"
        )
