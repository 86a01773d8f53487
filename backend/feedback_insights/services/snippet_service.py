import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feedback_insights.core.topics import (
    TOPICS, QUOTE_SUFFIX, SUMMARY_SUFFIX, insight_type, topic_key, topic_from_insight_type, topic_insight_types,
)
from feedback_insights.db.session import StorageError
from feedback_insights.models.chunk import FileChunk
from feedback_insights.models.insight import LLMInsight
from feedback_insights.schemas.snippet import (
    DateRange, FilteredSnippetsResponse, SnippetFilters, SnippetRecord,
    SnippetTimelineResponse, TimelineEntry, TimelineStats,
)
from feedback_insights.services.chunk_service import ChunkService, get_chunk_service
from feedback_insights.services.insight_store import InsightStore, get_insight_store

# Configure logger for this module
logger = logging.getLogger(__name__)


def resolve_topic(value: str) -> str:
    """
    Accepts a display name ('Pain Points') or key ('pain_points'), any case.
    Raises ValueError for anything else.
    """
    wanted = topic_key(value.strip())
    for topic in TOPICS:
        if topic_key(topic) == wanted:
            return topic
    raise ValueError(f"Unknown topic '{value}'. Valid topics: {TOPICS}")


def _day(value: Optional[datetime]) -> Optional[str]:
    return value.date().isoformat() if value else None


class SnippetService:
    """
    Browsing views over stored quotes: filtered listing and per-day timeline.
    Both read the most recent analysis run only, like the topic view.
    """

    def __init__(self, chunks: Optional[ChunkService] = None, store: Optional[InsightStore] = None):
        self.chunks = chunks or get_chunk_service()
        self.store = store or get_insight_store()

    def filter_snippets(
        self,
        db: Session,
        topic: Optional[str] = None,
        date: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> FilteredSnippetsResponse:
        if date:
            # Validates the YYYY-MM-DD form; raises ValueError otherwise.
            datetime.strptime(date, "%Y-%m-%d")

        if topic:
            resolved = resolve_topic(topic)
            types = [insight_type(resolved, QUOTE_SUFFIX), insight_type(resolved, SUMMARY_SUFFIX)]
        else:
            types = topic_insight_types(suffixes=(QUOTE_SUFFIX, SUMMARY_SUFFIX))

        latest_run = self.store.latest_run_clause(db)
        if latest_run is None:
            return FilteredSnippetsResponse(
                limit=limit, offset=offset, filters=SnippetFilters(topic=topic, date=date, search=search),
            )

        try:
            query = db.query(LLMInsight).filter(LLMInsight.insight_type.in_(types), latest_run)
            if search:
                query = query.filter(LLMInsight.content.ilike(f"%{search}%"))
            rows = query.order_by(LLMInsight.createdAt.desc(), LLMInsight.id).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query snippets: {e}") from e

        chunks = self.chunks.get_chunks(db, [(r.insight_metadata or {}).get("chunk_id") for r in rows])

        records: List[SnippetRecord] = []
        for row in rows:
            metadata = row.insight_metadata or {}
            chunk: Optional[FileChunk] = chunks.get(metadata.get("chunk_id"))
            original_date = _day(chunk.original_date) if chunk else None
            if date and original_date != date:
                continue
            records.append(SnippetRecord(
                id=row.id,
                insight_type=row.insight_type,
                topic=metadata.get("topic") or topic_from_insight_type(row.insight_type),
                content=row.content,
                relevance=metadata.get("relevance"),
                source=metadata.get("source"),
                chunk_id=metadata.get("chunk_id"),
                created_at=row.createdAt.isoformat() if row.createdAt else None,
                original_date=original_date,
                file_id=chunk.file_id if chunk else None,
                file_name=chunk.file.name if chunk and chunk.file else None,
            ))

        logger.debug(f"SnippetService: {len(records)} snippets match topic={topic}, date={date}, search={search}.")
        return FilteredSnippetsResponse(
            snippets=records[offset:offset + limit],
            total=len(records),
            limit=limit,
            offset=offset,
            filters=SnippetFilters(topic=topic, date=date, search=search),
        )

    def snippets_timeline(self, db: Session) -> SnippetTimelineResponse:
        latest_run = self.store.latest_run_clause(db)
        if latest_run is None:
            return SnippetTimelineResponse()

        try:
            rows = (
                db.query(LLMInsight)
                .filter(LLMInsight.insight_type.in_(topic_insight_types(suffixes=(QUOTE_SUFFIX,))), latest_run)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query snippets: {e}") from e

        chunks = self.chunks.get_chunks(db, [(r.insight_metadata or {}).get("chunk_id") for r in rows])

        per_day: Dict[str, Dict[str, int]] = {}
        counted = 0
        for row in rows:
            metadata = row.insight_metadata or {}
            chunk = chunks.get(metadata.get("chunk_id"))
            day = _day(chunk.original_date if chunk and chunk.original_date else row.createdAt)
            if day is None:
                continue
            topic = metadata.get("topic") or topic_from_insight_type(row.insight_type)
            topics = per_day.setdefault(day, {})
            topics[topic] = topics.get(topic, 0) + 1
            counted += 1

        timeline = [
            TimelineEntry(date=day, total=sum(topics.values()), topics=topics)
            for day, topics in sorted(per_day.items())
        ]
        return SnippetTimelineResponse(
            timeline=timeline,
            stats=TimelineStats(
                totalDates=len(timeline),
                totalSnippets=counted,
                dateRange=DateRange(
                    earliest=timeline[0].date if timeline else None,
                    latest=timeline[-1].date if timeline else None,
                ),
            ),
        )


# Create a single instance of the service
snippet_service = SnippetService()

def get_snippet_service():
    """
    Dependency function to provide the snippet service instance.
    """
    return snippet_service
