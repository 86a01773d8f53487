import logging
import concurrent.futures
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from feedback_insights.core.json_extract import extract_json
from feedback_insights.core.llm import LLMError, LLMManager
from feedback_insights.core.prompts import render_grouping_prompt
from feedback_insights.core.topics import (
    TOPICS, GROUPED_INSIGHT_SUFFIX, insight_type, topic_from_insight_type, topic_definition_summary,
)
from feedback_insights.models.insight import LLMInsight
from feedback_insights.schemas.insight import (
    ChartDatum, GroupedInsight, GroupedTopicInsight, GroupedTopicResponse, InsightMetadata, Snippet,
)
from feedback_insights.services.analysis_service import AnalysisService, get_analysis_service
from feedback_insights.services.insight_store import InsightStore, get_insight_store

# Configure logger for this module
logger = logging.getLogger(__name__)

GROUPED_INSIGHT_PATTERN = f"%{GROUPED_INSIGHT_SUFFIX}%"


class QuoteGrouper:
    """
    Clusters a topic's quotes into a few insight statements with one LLM call.
    Any failure yields no groups rather than an error.
    """

    def __init__(self, gateway: Optional[LLMManager] = None):
        self.gateway = gateway

    def get_gateway(self) -> LLMManager:
        if self.gateway is None:
            self.gateway = LLMManager.from_env()
        return self.gateway

    def group(self, topic: str, quotes: List[Snippet]) -> List[GroupedInsight]:
        if not quotes:
            return []

        prompt = render_grouping_prompt(topic, [q.model_dump() for q in quotes])
        try:
            raw = self.get_gateway().invoke(prompt)
        except LLMError as e:
            logger.error(f"QuoteGrouper: LLM call failed for {topic}: {e}")
            return []

        parsed = extract_json(raw, expect="array")
        if not parsed.ok or not isinstance(parsed.value, list):
            logger.warning(f"QuoteGrouper: Could not parse grouping response for {topic}: {parsed.error}")
            return []

        groups: List[GroupedInsight] = []
        for item in parsed.value:
            if not isinstance(item, dict):
                continue
            statement = item.get("insight_statement")
            if not isinstance(statement, str) or not statement.strip():
                continue

            indices: List[int] = []
            raw_indices = item.get("quote_indices")
            for index in raw_indices if isinstance(raw_indices, list) else []:
                # bool is an int subclass; true/false are not indices
                if isinstance(index, bool) or not isinstance(index, int):
                    continue
                if 0 <= index < len(quotes) and index not in indices:
                    indices.append(index)

            recommendations = item.get("recommendations")
            groups.append(GroupedInsight(
                insight_statement=statement.strip(),
                quotes=[quotes[i] for i in indices],
                recommendations=[r for r in recommendations if isinstance(r, str) and r.strip()]
                if isinstance(recommendations, list) else [],
            ))

        logger.info(f"QuoteGrouper: {topic}: {len(quotes)} quotes -> {len(groups)} groups.")
        return groups


def _snippet_from_dict(data: Dict[str, Any]) -> Optional[Snippet]:
    text = data.get("text")
    if not isinstance(text, str) or not text:
        return None
    try:
        relevance = max(0, min(5, int(data.get("relevance", 3))))
    except (TypeError, ValueError):
        relevance = 3
    return Snippet(
        text=text,
        chunk_id=str(data.get("chunk_id") or "unknown"),
        relevance=relevance,
        source=data.get("source"),
    )


def _grouped_response(insights: List[GroupedTopicInsight], is_demo: bool = False) -> GroupedTopicResponse:
    insights.sort(key=lambda i: i.total_mentions, reverse=True)
    return GroupedTopicResponse(
        chartData=[ChartDatum(name=i.topic, value=i.total_mentions) for i in insights],
        insights=insights,
        isDemo=is_demo,
    )


class GroupingService:
    """
    Builds and stores the grouped view: each topic's quotes clustered into
    insight statements. A regeneration replaces every stored group.
    """

    def __init__(
        self,
        grouper: Optional[QuoteGrouper] = None,
        analysis: Optional[AnalysisService] = None,
        store: Optional[InsightStore] = None,
    ):
        self.grouper = grouper or QuoteGrouper()
        self.analysis = analysis or get_analysis_service()
        self.store = store or get_insight_store()

    def generate_grouped_insights(self, db: Session) -> GroupedTopicResponse:
        analysis = self.analysis.run_analysis(db)
        logger.info(f"GroupingService: Grouping quotes for {len(analysis.insights)} topics (demo={analysis.isDemo}).")

        with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, len(analysis.insights))) as executor:
            futures = [executor.submit(self.grouper.group, i.topic, i.snippets) for i in analysis.insights]
            concurrent.futures.wait(futures)

        grouped: List[GroupedTopicInsight] = []
        for insight, future in zip(analysis.insights, futures):
            try:
                groups = future.result()
            except Exception as e:
                logger.error(f"GroupingService: Grouping failed for {insight.topic}: {e}", exc_info=True)
                groups = []
            grouped.append(GroupedTopicInsight(
                topic=insight.topic,
                summary=insight.summary,
                grouped_insights=groups,
                recommendations=insight.recommendations,
                total_mentions=insight.total_mentions,
            ))

        if analysis.isDemo:
            logger.info("GroupingService: Analysis returned demo data; grouped view not stored.")
        else:
            self.replace_grouped_insights(db, grouped)
        return _grouped_response(grouped, is_demo=analysis.isDemo)

    def replace_grouped_insights(self, db: Session, grouped: List[GroupedTopicInsight]) -> int:
        rows = []
        for topic_insight in grouped:
            for index, group in enumerate(topic_insight.grouped_insights):
                rows.append({
                    "insight_type": insight_type(topic_insight.topic, GROUPED_INSIGHT_SUFFIX),
                    "content": group.insight_statement,
                    "metadata": InsightMetadata(
                        topic=topic_insight.topic,
                        insight_index=index,
                        quotes=[q.model_dump(mode="json") for q in group.quotes],
                        total_quotes=len(group.quotes),
                        summary=topic_insight.summary,
                        group_recommendations=group.recommendations,
                        theme_recommendations=topic_insight.recommendations,
                        total_mentions=topic_insight.total_mentions,
                    ).to_json(),
                })
        self.store.replace_by_type_like(db, GROUPED_INSIGHT_PATTERN, rows)
        logger.info(f"GroupingService: Stored {len(rows)} grouped insights.")
        return len(rows)

    def load_stored_grouped_insights(self, db: Session) -> GroupedTopicResponse:
        rows = self.store.list_rows(db, type_like=GROUPED_INSIGHT_PATTERN, newest_first=False)

        by_topic: Dict[str, List[LLMInsight]] = {}
        for row in rows:
            metadata = row.insight_metadata or {}
            topic = metadata.get("topic") or topic_from_insight_type(row.insight_type)
            by_topic.setdefault(topic, []).append(row)

        insights: List[GroupedTopicInsight] = []
        for topic in TOPICS:
            topic_rows = by_topic.get(topic)
            if not topic_rows:
                continue
            topic_rows.sort(key=lambda r: (r.insight_metadata or {}).get("insight_index", 0))

            groups = []
            for row in topic_rows:
                metadata = row.insight_metadata or {}
                quotes = [s for s in (_snippet_from_dict(q) for q in metadata.get("quotes") or [] if isinstance(q, dict)) if s]
                groups.append(GroupedInsight(
                    insight_statement=row.content,
                    quotes=quotes,
                    recommendations=list(metadata.get("group_recommendations") or []),
                ))

            total = sum(len(g.quotes) for g in groups)
            insights.append(GroupedTopicInsight(
                topic=topic,
                summary=topic_definition_summary(topic, total),
                grouped_insights=groups,
                recommendations=list((topic_rows[0].insight_metadata or {}).get("theme_recommendations") or []),
                total_mentions=total,
            ))

        logger.debug(f"GroupingService: Loaded {len(rows)} stored grouped insights across {len(insights)} topics.")
        return _grouped_response(insights)


# Create a single instance of the service
grouping_service = GroupingService()

def get_grouping_service():
    """
    Dependency function to provide the grouping service instance.
    """
    return grouping_service
