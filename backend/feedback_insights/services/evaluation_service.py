import json
import time
import logging
import threading
import concurrent.futures
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from feedback_insights.core.config import settings
from feedback_insights.core.llm import ConfigurationError, LLMError, LLMManager
from feedback_insights.core.prompts import render_hallucination_prompt, render_relevance_prompt
from feedback_insights.core.scheduler import RecurringTask
from feedback_insights.core.topics import QUOTE_SUFFIX, topic_from_insight_type
from feedback_insights.db.session import SessionLocal, StorageError
from feedback_insights.models.insight import LLMInsight
from feedback_insights.schemas.evaluation import (
    CategoryStats, EvaluationRecord, EvaluationStatus, HallucinationStats, PerformanceMetrics, RelevanceStats,
)
from feedback_insights.schemas.insight import Evaluation
from feedback_insights.services.chunk_service import ChunkService, get_chunk_service
from feedback_insights.services.insight_store import InsightStore, get_insight_store

# Configure logger for this module
logger = logging.getLogger(__name__)

RECENT_EVALUATIONS = 15
RECENT_CONTENT_CHARS = 120


class InsightJudge:
    """
    LLM-as-judge for a single insight row: is it grounded in its source, and
    does it belong to its topic? A failed judgment counts as the optimistic
    answer (factual, relevant) so one bad call cannot flag a row.
    """

    def __init__(self, gateway: Optional[LLMManager] = None):
        self.gateway = gateway

    def get_gateway(self) -> LLMManager:
        if self.gateway is None:
            self.gateway = LLMManager.from_env(temperature=settings.EVAL_TEMPERATURE)
        return self.gateway

    def judge_hallucination(self, mode: str, reference: str, response: str) -> str:
        try:
            answer = self.get_gateway().invoke(render_hallucination_prompt(mode, reference, response))
        except LLMError as e:
            logger.warning(f"InsightJudge: Hallucination check failed, assuming factual: {e}")
            return "factual"
        return "hallucinated" if answer.strip().lower().startswith("hallucinated") else "factual"

    def judge_relevance(self, mode: str, reference: str) -> str:
        try:
            answer = self.get_gateway().invoke(render_relevance_prompt(mode, reference))
        except LLMError as e:
            logger.warning(f"InsightJudge: Relevance check failed, assuming relevant: {e}")
            return "relevant"
        return "unrelated" if answer.strip().lower().startswith("unrelated") else "relevant"

    def evaluate(self, mode: str, reference: str, content: str) -> Evaluation:
        return Evaluation(
            hallucination=self.judge_hallucination(mode, reference, content),
            relevance=self.judge_relevance(mode, content),
            evaluated_at=datetime.now(timezone.utc).isoformat(),
            mode=mode,
        )


@dataclass
class TickReport:
    skipped: bool = False
    selected: int = 0
    evaluated: int = 0
    failed: int = 0
    relevant: int = 0
    unrelated: int = 0
    factual: int = 0
    hallucinated: int = 0
    by_category: Dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class _EvaluationJob:
    insight_id: str
    mode: str
    reference: str
    content: str


def insight_category(row: LLMInsight) -> str:
    """Topic a row is judged against: from its type, else its metadata, else 'Unknown'."""
    return topic_from_insight_type(row.insight_type, fallback=(row.insight_metadata or {}).get("topic"))


class EvaluationWorker:
    """
    Periodically judges insight rows that have no `metadata.eval` yet.

    One tick evaluates at most a page of rows in small concurrent
    sub-batches. Ticks never overlap: a tick that starts while another is
    still running returns immediately. Rows are written back one at a time,
    so a crash mid-tick loses at most the in-flight sub-batch.
    """

    def __init__(
        self,
        judge: Optional[InsightJudge] = None,
        store: Optional[InsightStore] = None,
        chunks: Optional[ChunkService] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        page_size: int = settings.EVAL_PAGE_SIZE,
        batch_size: int = settings.EVAL_BATCH_SIZE,
        pause_seconds: float = settings.EVAL_BATCH_PAUSE_SECONDS,
    ):
        self.judge = judge or InsightJudge()
        self.store = store or get_insight_store()
        self.chunks = chunks or get_chunk_service()
        self.session_factory = session_factory
        self.page_size = page_size
        self.batch_size = max(1, batch_size)
        self.pause_seconds = pause_seconds
        self._lock = threading.Lock()
        self.last_report: Optional[TickReport] = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_once(self) -> TickReport:
        if not self._lock.acquire(blocking=False):
            logger.info("EvaluationWorker: Previous tick still running, skipping.")
            return TickReport(skipped=True)
        try:
            report = self._tick()
            self.last_report = report
            return report
        finally:
            self._lock.release()

    def _reference_text(self, db: Session, row: LLMInsight, category: str) -> str:
        metadata = row.insight_metadata or {}
        if row.insight_type.endswith(QUOTE_SUFFIX):
            try:
                content = self.chunks.get_chunk_content(db, metadata.get("chunk_id"))
            except StorageError as e:
                logger.warning(f"EvaluationWorker: Chunk lookup failed for {row.id}: {e}")
                content = None
            return content or f"Topic: {category}"
        return metadata.get("summary") or metadata.get("topic") or json.dumps(metadata)

    def _tick(self) -> TickReport:
        started = time.monotonic()
        report = TickReport()

        try:
            self.judge.get_gateway()
        except ConfigurationError as e:
            logger.debug(f"EvaluationWorker: LLM provider not configured, skipping tick: {e}")
            report.skipped = True
            return report

        db = self.session_factory()
        try:
            try:
                rows = self.store.query_missing_eval(db, self.page_size)
            except StorageError as e:
                logger.error(f"EvaluationWorker: Could not fetch unevaluated insights: {e}")
                return report

            report.selected = len(rows)
            if not rows:
                logger.debug("EvaluationWorker: No unevaluated insights.")
                return report

            jobs = []
            for row in rows:
                category = insight_category(row)
                jobs.append(_EvaluationJob(row.id, category, self._reference_text(db, row, category), row.content))

            batches = [jobs[i:i + self.batch_size] for i in range(0, len(jobs), self.batch_size)]
            for number, batch in enumerate(batches):
                if number > 0:
                    time.sleep(self.pause_seconds)
                self._evaluate_batch(db, batch, report)
        finally:
            db.close()
            report.duration_seconds = round(time.monotonic() - started, 3)

        logger.info(
            f"EvaluationWorker: Tick done: {report.evaluated}/{report.selected} evaluated, "
            f"{report.failed} failed, {report.relevant} relevant, {report.unrelated} unrelated, "
            f"{report.factual} factual, {report.hallucinated} hallucinated, by category {report.by_category} "
            f"in {report.duration_seconds}s."
        )
        return report

    def _evaluate_batch(self, db: Session, batch: List[_EvaluationJob], report: TickReport) -> None:
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(batch)) as executor:
            futures = [executor.submit(self.judge.evaluate, job.mode, job.reference, job.content) for job in batch]
            concurrent.futures.wait(futures)

        for job, future in zip(batch, futures):
            try:
                evaluation = future.result()
                if self.store.save_evaluation(db, job.insight_id, evaluation) is None:
                    report.failed += 1
                    continue
            except Exception as e:
                logger.error(f"EvaluationWorker: Failed to evaluate {job.insight_id}: {e}")
                report.failed += 1
                continue
            report.evaluated += 1
            report.by_category[job.mode] = report.by_category.get(job.mode, 0) + 1
            if evaluation.relevance == "relevant":
                report.relevant += 1
            else:
                report.unrelated += 1
            if evaluation.hallucination == "factual":
                report.factual += 1
            else:
                report.hallucinated += 1


def _rate(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


class EvaluationStatusService:
    """Read-side summary of evaluation coverage and outcomes, plus reset."""

    def __init__(self, store: Optional[InsightStore] = None):
        self.store = store or get_insight_store()

    def get_status(self, db: Session) -> EvaluationStatus:
        rows = self.store.list_rows(db)

        relevance = RelevanceStats()
        hallucination = HallucinationStats()
        by_category: Dict[str, CategoryStats] = {}
        records: List[EvaluationRecord] = []

        for row in rows:
            category = insight_category(row)
            stats = by_category.setdefault(category, CategoryStats())
            stats.total += 1

            evaluation = (row.insight_metadata or {}).get("eval")
            if not isinstance(evaluation, dict):
                continue

            stats.evaluated += 1
            if evaluation.get("relevance") == "unrelated":
                relevance.unrelated += 1
            else:
                relevance.relevant += 1
                stats.relevant += 1
            if evaluation.get("hallucination") == "hallucinated":
                hallucination.hallucinated += 1
            else:
                hallucination.factual += 1
                stats.factual += 1

            records.append(EvaluationRecord(
                id=row.id,
                insight_type=row.insight_type,
                category=category,
                content=row.content,
                relevance=evaluation.get("relevance") or "relevant",
                hallucination=evaluation.get("hallucination") or "factual",
                evaluated_at=evaluation.get("evaluated_at"),
                mode=evaluation.get("mode"),
            ))

        for stats in by_category.values():
            stats.relevanceRate = _rate(stats.relevant, stats.evaluated)
            stats.factualRate = _rate(stats.factual, stats.evaluated)

        records.sort(key=lambda r: r.evaluated_at or "", reverse=True)
        recent = []
        for record in records[:RECENT_EVALUATIONS]:
            content = record.content
            if len(content) > RECENT_CONTENT_CHARS:
                content = content[:RECENT_CONTENT_CHARS] + "..."
            recent.append(record.model_copy(update={"content": content}))

        evaluated = len(records)
        return EvaluationStatus(
            status="active" if settings.EVAL_WORKER_ENABLED else "disabled",
            worker_enabled=settings.EVAL_WORKER_ENABLED,
            totalInsights=len(rows),
            evaluatedInsights=evaluated,
            unevaluatedInsights=len(rows) - evaluated,
            relevanceStats=relevance,
            hallucinationStats=hallucination,
            byCategory=by_category,
            performanceMetrics=PerformanceMetrics(
                overallRelevanceRate=_rate(relevance.relevant, evaluated),
                overallFactualRate=_rate(hallucination.factual, evaluated),
                evaluationCoverage=_rate(evaluated, len(rows)),
            ),
            recentEvaluations=recent,
            allEvaluations=records,
            last_updated=datetime.now(timezone.utc).isoformat(),
        )

    def reset_evaluations(self, db: Session) -> int:
        return self.store.reset_evaluations(db)


def create_evaluation_scheduler(worker: EvaluationWorker) -> RecurringTask:
    return RecurringTask(
        worker.run_once,
        interval=settings.EVAL_INTERVAL_SECONDS,
        initial_delay=settings.EVAL_STARTUP_DELAY_SECONDS,
        name="evaluation-worker",
    )


# Create single instances of the services
evaluation_worker = EvaluationWorker()
evaluation_status_service = EvaluationStatusService()

def get_evaluation_worker():
    """
    Dependency function to provide the evaluation worker instance.
    """
    return evaluation_worker

def get_evaluation_status_service():
    """
    Dependency function to provide the evaluation status service instance.
    """
    return evaluation_status_service
