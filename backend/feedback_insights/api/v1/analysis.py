import logging
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

# Import services, schemas, and dependencies
from feedback_insights.core.config import settings
from feedback_insights.db.session import get_db, get_session_factory
from feedback_insights.schemas.insight import TopicAnalysisResponse
from feedback_insights.services.analysis_service import AnalysisService, get_analysis_service, stream_in_background

# Configure logger for this module
logger = logging.getLogger(__name__)

# Create a new router for this module.
# All routes defined here will be prefixed with what's defined in main.py.
router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _run(db: Session, refresh: bool, analysis_service: AnalysisService) -> TopicAnalysisResponse:
    logger.debug(f"API: Topic analysis requested (refresh={refresh}).")
    result = analysis_service.run_analysis(db, refresh=refresh)
    logger.debug(f"API: Topic analysis returned {len(result.insights)} topics (source={result.source}, demo={result.isDemo}).")
    return result


@router.get(
    "/",
    response_model=TopicAnalysisResponse,
    status_code=status.HTTP_200_OK,
    summary="Get topic analysis",
    description="Returns the stored topic analysis when one exists, otherwise analyses the newest feedback chunks and stores the result. Falls back to demo data (`isDemo: true`) when a real analysis cannot be produced."
)
def get_topic_analysis(
    *,
    db: Session = Depends(get_db),
    refresh: bool = Query(False, description="Ignore stored results and analyse again."),
    analysis_service: AnalysisService = Depends(get_analysis_service)
):
    return _run(db, refresh, analysis_service)


@router.post(
    "/",
    response_model=TopicAnalysisResponse,
    status_code=status.HTTP_200_OK,
    summary="Run topic analysis",
    description="Same as GET; provided for clients that trigger analysis with POST."
)
def post_topic_analysis(
    *,
    db: Session = Depends(get_db),
    refresh: bool = Query(False, description="Ignore stored results and analyse again."),
    analysis_service: AnalysisService = Depends(get_analysis_service)
):
    return _run(db, refresh, analysis_service)


@router.get(
    "/stream",
    summary="Stream a fresh topic analysis",
    description="Server-Sent Events stream of progress frames (`progress`, `keepalive`) ending with one `complete` frame carrying the analysis, or one `error` frame."
)
def stream_topic_analysis(
    *,
    session_factory=Depends(get_session_factory),
    analysis_service: AnalysisService = Depends(get_analysis_service)
):
    logger.debug("API: Streaming topic analysis requested.")
    events = stream_in_background(
        analysis_service.stream_analysis(session_factory),
        keepalive_seconds=settings.STREAM_KEEPALIVE_SECONDS,
    )
    return StreamingResponse(
        (event.to_sse() for event in events),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
