import time
import queue
import logging
import threading
import concurrent.futures
from dataclasses import dataclass, field
from typing import Any, Callable, Generator, Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session

from feedback_insights.core.attribution import extract_source_name
from feedback_insights.core.config import settings
from feedback_insights.core.demo import demo_response
from feedback_insights.core.llm import ConfigurationError
from feedback_insights.core.topics import TOPICS, generate_topic_summary
from feedback_insights.db.session import StorageError
from feedback_insights.schemas.insight import (
    ChartDatum, ProgressEvent, Snippet, TopicAnalysisResponse, TopicInsight,
)
from feedback_insights.services.chunk_service import ChunkService, get_chunk_service
from feedback_insights.services.insight_store import InsightStore, get_insight_store
from feedback_insights.services.topic_analyzer import TopicAnalysisResult, TopicAnalyzer

# Configure logger for this module
logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No customer feedback data found. Please upload data first."

# Progress percentages reported by the streaming analysis.
PROGRESS_START = 0
PROGRESS_LOADING = 10
PROGRESS_LOADED = 20
PROGRESS_ANALYSIS_START = 30
PROGRESS_ANALYSIS_SPAN = 60
PROGRESS_SAVING = 95
PROGRESS_DONE = 100


@dataclass
class TopicAccumulator:
    """Running totals for one topic across every chunk of a run."""
    topic: str
    total_score: int = 0
    mention_count: int = 0
    snippets: List[Snippet] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def add(self, result: TopicAnalysisResult, threshold: int) -> None:
        if result.relevance_score <= 0:
            return
        self.total_score += result.relevance_score
        self.mention_count += 1
        if result.relevance_score >= threshold:
            self.snippets.extend(result.snippets)
        for recommendation in result.recommendations:
            if recommendation not in self.recommendations:
                self.recommendations.append(recommendation)

    def finalize(self, threshold: int, max_recommendations: int) -> Optional[TopicInsight]:
        """The topic's insight, or None when no snippet clears the threshold."""
        qualifying = [s for s in self.snippets if s.relevance >= threshold]
        if not qualifying:
            return None
        # sort() is stable, so equal relevance keeps discovery order.
        qualifying.sort(key=lambda s: s.relevance, reverse=True)
        return TopicInsight(
            topic=self.topic,
            summary=generate_topic_summary(self.topic, len(qualifying)),
            snippets=qualifying,
            recommendations=self.recommendations[:max_recommendations],
            total_mentions=len(qualifying),
        )


def build_response(insights: List[TopicInsight], source: str) -> TopicAnalysisResponse:
    return TopicAnalysisResponse(
        chartData=[ChartDatum(name=i.topic, value=i.total_mentions) for i in insights],
        insights=insights,
        isDemo=False,
        source=source,
    )


class BatchOrchestrator:
    """
    Fans chunk x topic analyses out in small batches and folds the results
    into per-topic insights.

    Calls within a batch run concurrently and the batch waits for all of
    them to settle; one failed call only loses its own chunk/topic pair.
    """

    def __init__(
        self,
        analyzer: TopicAnalyzer,
        batch_size: int = settings.ANALYSIS_BATCH_SIZE,
        max_chunks: int = settings.ANALYSIS_MAX_CHUNKS,
        min_chunk_length: int = settings.ANALYSIS_MIN_CHUNK_LENGTH,
        pause_seconds: float = settings.ANALYSIS_BATCH_PAUSE_SECONDS,
        threshold: int = settings.RELEVANCE_THRESHOLD,
        max_recommendations: int = settings.MAX_RECOMMENDATIONS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.analyzer = analyzer
        self.batch_size = max(1, batch_size)
        self.max_chunks = max_chunks
        self.min_chunk_length = min_chunk_length
        self.pause_seconds = pause_seconds
        self.threshold = threshold
        self.max_recommendations = max_recommendations
        self.sleep = sleep

    def select_chunks(self, chunks: Sequence[Any]) -> List[Any]:
        """First `max_chunks` chunks, minus those too short to analyse."""
        selected = [c for c in list(chunks)[:self.max_chunks] if len(c.content or "") >= self.min_chunk_length]
        skipped = min(len(chunks), self.max_chunks) - len(selected)
        if skipped:
            logger.debug(f"BatchOrchestrator: Skipped {skipped} chunks shorter than {self.min_chunk_length} characters.")
        return selected

    def _analyze_batch(self, batch: List[Any], accumulators: dict) -> None:
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(batch) * len(TOPICS)) as executor:
            futures = {}
            for chunk in batch:
                source_name = extract_source_name(chunk.content)
                for topic in TOPICS:
                    future = executor.submit(self.analyzer.analyze, chunk.content, chunk.id, topic, source_name)
                    futures[future] = (chunk.id, topic)
            concurrent.futures.wait(futures)

        for future, (chunk_id, topic) in futures.items():
            try:
                result = future.result()
            except Exception as e:
                logger.error(f"BatchOrchestrator: Analysis of chunk {chunk_id} / {topic} raised: {e}", exc_info=True)
                continue
            accumulators[topic].add(result, self.threshold)

    def iter_run(self, chunks: List[Any]) -> Generator[ProgressEvent, None, List[TopicInsight]]:
        """
        Analyses already-selected chunks, yielding progress frames as batches
        start and finish. The generator's return value is the insight list,
        sorted by mention count (descending, stable in topic order).
        """
        accumulators = {topic: TopicAccumulator(topic) for topic in TOPICS}
        total = len(chunks)
        batches = [chunks[i:i + self.batch_size] for i in range(0, total, self.batch_size)]
        processed = 0

        for number, batch in enumerate(batches, start=1):
            yield ProgressEvent(
                type="progress",
                message=f"Analyzing batch {number} of {len(batches)} ({len(batch)} chunks)...",
                progress=self._progress(processed, total),
            )
            self._analyze_batch(batch, accumulators)
            processed += len(batch)
            logger.info(f"BatchOrchestrator: Completed batch {number}/{len(batches)} ({processed}/{total} chunks).")
            yield ProgressEvent(
                type="progress",
                message=f"Processed {processed} of {total} chunks",
                progress=self._progress(processed, total),
            )
            if number < len(batches):
                yield ProgressEvent(type="keepalive", message="Processing next batch...")
                self.sleep(self.pause_seconds)

        insights = [
            insight for insight in (acc.finalize(self.threshold, self.max_recommendations) for acc in accumulators.values())
            if insight is not None
        ]
        insights.sort(key=lambda i: i.total_mentions, reverse=True)
        return insights

    def run(self, chunks: List[Any]) -> List[TopicInsight]:
        """iter_run without the progress frames."""
        events = self.iter_run(chunks)
        while True:
            try:
                next(events)
            except StopIteration as stop:
                return stop.value

    @staticmethod
    def _progress(processed: int, total: int) -> float:
        if total <= 0:
            return float(PROGRESS_ANALYSIS_START + PROGRESS_ANALYSIS_SPAN)
        return float(round(PROGRESS_ANALYSIS_START + processed / total * PROGRESS_ANALYSIS_SPAN))


class AnalysisService:
    """
    Entry points for topic analysis: the synchronous request/response path
    and the streaming path that reports progress while it works.
    """

    def __init__(
        self,
        analyzer: Optional[TopicAnalyzer] = None,
        store: Optional[InsightStore] = None,
        chunks: Optional[ChunkService] = None,
        orchestrator: Optional[BatchOrchestrator] = None,
    ):
        self.analyzer = analyzer or TopicAnalyzer()
        self.store = store or get_insight_store()
        self.chunks = chunks or get_chunk_service()
        self.orchestrator = orchestrator or BatchOrchestrator(self.analyzer)

    def run_analysis(self, db: Session, refresh: bool = False) -> TopicAnalysisResponse:
        """
        Returns the stored view when one exists (unless `refresh`), otherwise
        analyses the newest chunks, stores the run and returns it. Falls back
        to demo data whenever a real result cannot be produced.
        """
        try:
            if not refresh:
                stored = self.store.load_latest_topic_view(db)
                if stored is not None and stored.insights:
                    logger.info(f"AnalysisService: Returning stored insights ({len(stored.insights)} topics).")
                    return stored

            chunk_count = self.chunks.count_chunks(db)
            if chunk_count == 0:
                logger.info("AnalysisService: No chunks found, returning demo data.")
                return demo_response()
            if not refresh and chunk_count > settings.ANALYSIS_SYNC_CHUNK_THRESHOLD:
                logger.info(
                    f"AnalysisService: {chunk_count} chunks and no stored results; "
                    "returning demo data. Use the streaming endpoint to analyse this dataset."
                )
                return demo_response()

            self.analyzer.get_gateway()

            chunks = self.orchestrator.select_chunks(self.chunks.list_chunks(db, limit=self.orchestrator.max_chunks))
            logger.info(f"AnalysisService: Analysing {len(chunks)} chunks.")
            insights = self.orchestrator.run(chunks)
            if not insights:
                logger.info("AnalysisService: No qualifying insights found, returning demo data.")
                return demo_response()

            self.store.persist(db, insights)
            return build_response(insights, source="processed_chunks")
        except ConfigurationError as e:
            logger.warning(f"AnalysisService: LLM provider not configured, returning demo data: {e}")
            return demo_response()
        except Exception as e:
            logger.error(f"AnalysisService: Analysis failed, returning demo data: {e}", exc_info=True)
            return demo_response()

    def stream_analysis(self, session_factory: Callable[[], Session]) -> Iterator[ProgressEvent]:
        """
        Runs a fresh analysis, yielding progress frames and ending with exactly
        one `complete` or `error` frame. Opens and closes its own session so
        it can run on a thread other than the request's.
        """
        yield ProgressEvent(type="progress", message="Starting topic analysis...", progress=PROGRESS_START)
        db = session_factory()
        try:
            yield ProgressEvent(type="progress", message="Loading customer feedback...", progress=PROGRESS_LOADING)
            try:
                all_chunks = self.chunks.list_chunks(db, limit=self.orchestrator.max_chunks)
            except StorageError as e:
                yield ProgressEvent(type="error", message=f"Database error: {e}")
                return

            if not all_chunks:
                yield ProgressEvent(type="error", message=NO_DATA_MESSAGE)
                return

            try:
                self.analyzer.get_gateway()
            except ConfigurationError as e:
                yield ProgressEvent(type="error", message=f"LLM provider not configured: {e}")
                return

            chunks = self.orchestrator.select_chunks(all_chunks)
            yield ProgressEvent(
                type="progress",
                message=f"Found {len(all_chunks)} chunks, {len(chunks)} with enough content to analyze",
                progress=PROGRESS_LOADED,
            )
            yield ProgressEvent(type="progress", message="Analyzing feedback by topic...", progress=PROGRESS_ANALYSIS_START)

            insights = yield from self.orchestrator.iter_run(chunks)

            yield ProgressEvent(type="progress", message="Saving insights...", progress=PROGRESS_SAVING)
            if insights:
                try:
                    self.store.persist(db, insights)
                except StorageError as e:
                    logger.error(f"AnalysisService: Failed to store streamed results: {e}")

            yield ProgressEvent(
                type="complete",
                message=f"Analysis complete: {len(insights)} topics with qualifying feedback",
                progress=PROGRESS_DONE,
                data=build_response(insights, source="processed_chunks"),
            )
        except Exception as e:
            logger.error(f"AnalysisService: Streaming analysis failed: {e}", exc_info=True)
            yield ProgressEvent(type="error", message=f"Analysis failed: {e}")
        finally:
            db.close()


_STREAM_DONE = object()


def stream_in_background(events: Iterator[ProgressEvent], keepalive_seconds: float = settings.STREAM_KEEPALIVE_SECONDS) -> Iterator[ProgressEvent]:
    """
    Drives `events` on a daemon thread and relays its frames, inserting a
    keepalive frame whenever nothing arrives for `keepalive_seconds`.

    If the consumer stops reading (client disconnect) the thread still runs
    to completion, so a finished analysis is persisted even if undelivered.
    """
    frames: "queue.Queue[Any]" = queue.Queue()

    def pump():
        try:
            for event in events:
                frames.put(event)
        except Exception as e:
            logger.error(f"AnalysisService: Background analysis stream failed: {e}", exc_info=True)
            frames.put(ProgressEvent(type="error", message=f"Analysis failed: {e}"))
        finally:
            frames.put(_STREAM_DONE)

    threading.Thread(target=pump, name="topic-analysis-stream", daemon=True).start()

    while True:
        try:
            item = frames.get(timeout=keepalive_seconds)
        except queue.Empty:
            yield ProgressEvent(type="keepalive", message="Still processing...")
            continue
        if item is _STREAM_DONE:
            return
        yield item


# Create a single instance of the service
analysis_service = AnalysisService()

def get_analysis_service():
    """
    Dependency function to provide the analysis service instance.
    """
    return analysis_service
