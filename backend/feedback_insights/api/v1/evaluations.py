import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

# Import services, schemas, and dependencies
from feedback_insights.db.session import get_db, StorageError
from feedback_insights.schemas.evaluation import EvaluationStatus, ResetResult, TickReportOut
from feedback_insights.services.evaluation_service import (
    EvaluationStatusService, EvaluationWorker, get_evaluation_status_service, get_evaluation_worker,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

# Create a new router for this module.
router = APIRouter()


@router.get(
    "/status",
    response_model=EvaluationStatus,
    summary="Evaluation status",
    description="Coverage and outcome statistics of the background insight evaluation, overall and per topic, with the most recent judgments."
)
def read_evaluation_status(
    *,
    db: Session = Depends(get_db),
    status_service: EvaluationStatusService = Depends(get_evaluation_status_service)
):
    try:
        return status_service.get_status(db)
    except StorageError as e:
        logger.error(f"API: Failed to compute evaluation status: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to compute evaluation status: {e}"
        )


@router.post(
    "/run",
    response_model=TickReportOut,
    summary="Run one evaluation tick now",
    description="Evaluates one page of unevaluated insights immediately. Returns `skipped: true` if a tick is already running or no LLM provider is configured."
)
def run_evaluation_tick(
    *,
    worker: EvaluationWorker = Depends(get_evaluation_worker)
):
    logger.debug("API: Manual evaluation tick requested.")
    report = worker.run_once()
    return TickReportOut(**report.to_dict())


@router.post(
    "/reset",
    response_model=ResetResult,
    summary="Reset evaluations",
    description="Removes every stored judgment so the worker evaluates all insights again."
)
def reset_evaluations(
    *,
    db: Session = Depends(get_db),
    status_service: EvaluationStatusService = Depends(get_evaluation_status_service)
):
    try:
        count = status_service.reset_evaluations(db)
    except StorageError as e:
        logger.error(f"API: Failed to reset evaluations: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to reset evaluations: {e}"
        )
    logger.info(f"API: Reset evaluations on {count} insights.")
    return ResetResult(success=True, reset_count=count, message=f"Reset evaluations for {count} insights.")
