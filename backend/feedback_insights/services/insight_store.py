import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feedback_insights.core.config import settings
from feedback_insights.core.topics import (
    TOPICS, QUOTE_SUFFIX, RECOMMENDATION_SUFFIX, SUMMARY_SUFFIX,
    insight_type, topic_insight_types, generate_topic_summary,
)
from feedback_insights.db.session import StorageError
from feedback_insights.models.insight import LLMInsight
from feedback_insights.schemas.insight import (
    ChartDatum, Evaluation, InsightMetadata, Snippet, TopicAnalysisResponse, TopicInsight,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

__all__ = ["InsightStore", "StorageError", "get_insight_store", "merge_evaluation", "new_insight_id", "new_run_id"]


def new_insight_id() -> str:
    return f"insight_{uuid.uuid4().hex}"


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex}"


def merge_evaluation(metadata: Optional[Dict[str, Any]], evaluation: Evaluation) -> Dict[str, Any]:
    """
    Returns a copy of `metadata` with `eval` set, leaving every sibling key intact.
    """
    merged = dict(metadata or {})
    merged["eval"] = evaluation.model_dump(mode="json")
    return merged


def _int_or(value: Any, default: int) -> int:
    try:
        return max(0, min(5, int(value)))
    except (TypeError, ValueError):
        return default


class InsightStore:
    """
    Persistence for derived insight rows (`llm_insights`).

    Analysis writes are append-only. Each run tags its rows with a `run_id`
    and the topic view is rebuilt from the most recent run only, so repeated
    runs never inflate counts. Rows written before run tagging existed have
    no `run_id` and are read together as a single generation.
    """

    # --- writes ---

    def insert_rows(self, db: Session, rows: Iterable[Dict[str, Any]]) -> List[LLMInsight]:
        """
        Inserts rows given as dicts with `insight_type`, `content`, `metadata`
        and optionally `file_id`, `user_id`, `created_at`. One transaction.
        """
        now = datetime.now(timezone.utc)
        db_rows = [
            LLMInsight(
                id=new_insight_id(),
                file_id=row.get("file_id"),
                user_id=row.get("user_id"),
                insight_type=row["insight_type"],
                content=row["content"],
                insight_metadata=dict(row.get("metadata") or {}),
                createdAt=row.get("created_at") or now,
            )
            for row in rows
        ]
        if not db_rows:
            return []
        try:
            db.add_all(db_rows)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"InsightStore: Failed to insert {len(db_rows)} rows: {e}", exc_info=True)
            raise StorageError(f"Failed to store insights: {e}") from e
        logger.info(f"InsightStore: Inserted {len(db_rows)} insight rows.")
        return db_rows

    def persist(self, db: Session, insights: List[TopicInsight], run_id: Optional[str] = None) -> str:
        """
        Writes one analysis run: per topic its recommendation rows, its quote
        rows and exactly one summary row. Returns the run id.
        """
        run_id = run_id or new_run_id()
        rows: List[Dict[str, Any]] = []

        for insight in insights:
            for recommendation in insight.recommendations:
                rows.append({
                    "insight_type": insight_type(insight.topic, RECOMMENDATION_SUFFIX),
                    "content": recommendation,
                    "metadata": InsightMetadata(
                        topic=insight.topic,
                        total_mentions=insight.total_mentions,
                        summary=insight.summary,
                        run_id=run_id,
                    ).to_json(),
                })

            for snippet in insight.snippets:
                rows.append({
                    "insight_type": insight_type(insight.topic, QUOTE_SUFFIX),
                    "content": snippet.text,
                    "metadata": InsightMetadata(
                        topic=insight.topic,
                        chunk_id=snippet.chunk_id,
                        relevance=snippet.relevance,
                        source=snippet.source,
                        run_id=run_id,
                    ).to_json(),
                })

            rows.append({
                "insight_type": insight_type(insight.topic, SUMMARY_SUFFIX),
                "content": insight.summary,
                "metadata": InsightMetadata(
                    topic=insight.topic,
                    total_mentions=insight.total_mentions,
                    snippet_count=len(insight.snippets),
                    run_id=run_id,
                ).to_json(),
            })

        self.insert_rows(db, rows)
        logger.info(f"InsightStore: Persisted run {run_id} ({len(insights)} topics, {len(rows)} rows).")
        return run_id

    def update_metadata(self, db: Session, insight_id: str, metadata: Dict[str, Any]) -> Optional[LLMInsight]:
        """
        Merges `metadata` into the row's existing metadata. Keys not named
        in `metadata` are preserved. Returns None when the row is gone.
        """
        return self._modify_metadata(db, insight_id, lambda current: {**current, **metadata})

    def save_evaluation(self, db: Session, insight_id: str, evaluation: Evaluation) -> Optional[LLMInsight]:
        return self._modify_metadata(db, insight_id, lambda current: merge_evaluation(current, evaluation))

    def _modify_metadata(self, db: Session, insight_id: str, change) -> Optional[LLMInsight]:
        try:
            row = db.query(LLMInsight).filter(LLMInsight.id == insight_id).first()
            if row is None:
                logger.warning(f"InsightStore: Row {insight_id} not found for metadata update.")
                return None
            # A new dict so the JSON column is seen as changed.
            row.insight_metadata = change(dict(row.insight_metadata or {}))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to update metadata for {insight_id}: {e}") from e
        return row

    def delete_by_type_like(self, db: Session, pattern: str) -> int:
        try:
            deleted = (
                db.query(LLMInsight)
                .filter(LLMInsight.insight_type.like(pattern))
                .delete(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to delete insights like '{pattern}': {e}") from e
        logger.info(f"InsightStore: Deleted {deleted} rows matching '{pattern}'.")
        return deleted

    def replace_by_type_like(self, db: Session, pattern: str, rows: Iterable[Dict[str, Any]]) -> int:
        """
        Deletes every row whose type matches `pattern` and inserts `rows`, in
        one transaction. Returns the number of rows deleted.
        """
        now = datetime.now(timezone.utc)
        try:
            deleted = (
                db.query(LLMInsight)
                .filter(LLMInsight.insight_type.like(pattern))
                .delete(synchronize_session=False)
            )
            db.add_all([
                LLMInsight(
                    id=new_insight_id(),
                    insight_type=row["insight_type"],
                    content=row["content"],
                    insight_metadata=dict(row.get("metadata") or {}),
                    createdAt=now,
                )
                for row in rows
            ])
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"InsightStore: Failed to replace rows like '{pattern}': {e}", exc_info=True)
            raise StorageError(f"Failed to replace insights like '{pattern}': {e}") from e
        logger.info(f"InsightStore: Replaced {deleted} rows matching '{pattern}'.")
        return deleted

    def reset_evaluations(self, db: Session) -> int:
        """Strips `eval` from every evaluated row. Returns the number of rows reset."""
        try:
            rows = (
                db.query(LLMInsight)
                .filter(LLMInsight.insight_metadata["eval"].as_string().isnot(None))
                .all()
            )
            for row in rows:
                row.insight_metadata = {k: v for k, v in (row.insight_metadata or {}).items() if k != "eval"}
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to reset evaluations: {e}") from e
        logger.info(f"InsightStore: Reset evaluations on {len(rows)} rows.")
        return len(rows)

    # --- reads ---

    def list_rows(
        self,
        db: Session,
        insight_types: Optional[List[str]] = None,
        type_like: Optional[str] = None,
        newest_first: bool = True,
    ) -> List[LLMInsight]:
        try:
            query = db.query(LLMInsight)
            if insight_types is not None:
                query = query.filter(LLMInsight.insight_type.in_(insight_types))
            if type_like is not None:
                query = query.filter(LLMInsight.insight_type.like(type_like))
            order = LLMInsight.createdAt.desc() if newest_first else LLMInsight.createdAt.asc()
            return query.order_by(order, LLMInsight.id).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list insights: {e}") from e

    def has_topic_rows(self, db: Session) -> bool:
        try:
            return (
                db.query(LLMInsight.id)
                .filter(LLMInsight.insight_type.in_(topic_insight_types()))
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to check stored insights: {e}") from e

    def query_missing_eval(self, db: Session, limit: int) -> List[LLMInsight]:
        """Oldest rows whose metadata has no `eval` key, at most `limit`."""
        try:
            return (
                db.query(LLMInsight)
                .filter(LLMInsight.insight_metadata["eval"].as_string().is_(None))
                .order_by(LLMInsight.createdAt.asc(), LLMInsight.id)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query unevaluated insights: {e}") from e

    def latest_run_clause(self, db: Session):
        """
        SQL criterion matching rows of the most recent analysis run, or None
        when no topic rows are stored. Untagged rows count as one run.
        """
        try:
            newest = (
                db.query(LLMInsight)
                .filter(LLMInsight.insight_type.in_(topic_insight_types()))
                .order_by(LLMInsight.createdAt.desc(), LLMInsight.id)
                .first()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to find the latest analysis run: {e}") from e
        if newest is None:
            return None
        run_id = (newest.insight_metadata or {}).get("run_id")
        run_path = LLMInsight.insight_metadata["run_id"].as_string()
        return run_path.is_(None) if run_id is None else run_path == run_id

    def latest_topic_rows(self, db: Session) -> List[LLMInsight]:
        """Topic-analysis rows of the most recent run, newest first."""
        clause = self.latest_run_clause(db)
        if clause is None:
            return []
        try:
            return (
                db.query(LLMInsight)
                .filter(LLMInsight.insight_type.in_(topic_insight_types()), clause)
                .order_by(LLMInsight.createdAt.desc(), LLMInsight.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load the latest analysis run: {e}") from e

    def load_latest_topic_view(self, db: Session) -> Optional[TopicAnalysisResponse]:
        """
        Rebuilds the topic analysis response from stored rows, or returns None
        when nothing has been stored yet.
        """
        rows = self.latest_topic_rows(db)
        if not rows:
            return None

        insights: List[TopicInsight] = []
        for topic in TOPICS:
            quote_type = insight_type(topic, QUOTE_SUFFIX)
            rec_type = insight_type(topic, RECOMMENDATION_SUFFIX)
            summary_type = insight_type(topic, SUMMARY_SUFFIX)
            topic_rows = [r for r in rows if r.insight_type in (quote_type, rec_type, summary_type)]
            if not topic_rows:
                continue

            snippets = [
                Snippet(
                    text=r.content,
                    chunk_id=(r.insight_metadata or {}).get("chunk_id") or "unknown",
                    relevance=_int_or((r.insight_metadata or {}).get("relevance"), 3),
                    source=(r.insight_metadata or {}).get("source"),
                )
                for r in topic_rows if r.insight_type == quote_type
            ]
            snippets.sort(key=lambda s: s.relevance, reverse=True)

            recommendations: List[str] = []
            for r in topic_rows:
                if r.insight_type == rec_type and r.content not in recommendations:
                    recommendations.append(r.content)

            summary_row = next((r for r in topic_rows if r.insight_type == summary_type), None)
            summary = summary_row.content if summary_row else generate_topic_summary(topic, len(snippets))

            insights.append(TopicInsight(
                topic=topic,
                summary=summary,
                snippets=snippets,
                recommendations=recommendations[:settings.MAX_RECOMMENDATIONS],
                total_mentions=len(snippets),
            ))

        insights.sort(key=lambda i: i.total_mentions, reverse=True)
        logger.debug(f"InsightStore: Rebuilt stored view with {len(insights)} topics from {len(rows)} rows.")
        return TopicAnalysisResponse(
            chartData=[ChartDatum(name=i.topic, value=i.total_mentions) for i in insights],
            insights=insights,
            isDemo=False,
            source="database_insights",
        )


# Create a single instance of the service
insight_store = InsightStore()

def get_insight_store():
    """
    Dependency function to provide the insight store instance.
    """
    return insight_store
