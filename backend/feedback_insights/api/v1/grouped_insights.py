import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

# Import services, schemas, and dependencies
from feedback_insights.db.session import get_db, StorageError
from feedback_insights.schemas.insight import GroupedTopicResponse
from feedback_insights.services.grouping_service import GroupingService, get_grouping_service

# Configure logger for this module
logger = logging.getLogger(__name__)

# Create a new router for this module.
router = APIRouter()


@router.get(
    "/",
    response_model=GroupedTopicResponse,
    status_code=status.HTTP_200_OK,
    summary="Generate grouped insights",
    description="Groups each topic's quotes into insight statements with recommendations, replacing any previously stored groups."
)
def generate_grouped_insights(
    *,
    db: Session = Depends(get_db),
    grouping_service: GroupingService = Depends(get_grouping_service)
):
    logger.debug("API: Grouped insight generation requested.")
    try:
        return grouping_service.generate_grouped_insights(db)
    except StorageError as e:
        logger.error(f"API: Failed to store grouped insights: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to store grouped insights: {e}"
        )


@router.get(
    "/stored",
    response_model=GroupedTopicResponse,
    status_code=status.HTTP_200_OK,
    summary="Read stored grouped insights",
    description="Returns the most recently generated grouped insights without calling the LLM."
)
def read_stored_grouped_insights(
    *,
    db: Session = Depends(get_db),
    grouping_service: GroupingService = Depends(get_grouping_service)
):
    try:
        return grouping_service.load_stored_grouped_insights(db)
    except StorageError as e:
        logger.error(f"API: Failed to load stored grouped insights: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load stored grouped insights: {e}"
        )
