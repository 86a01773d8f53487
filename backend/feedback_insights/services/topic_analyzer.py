import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from feedback_insights.core.json_extract import extract_json
from feedback_insights.core.llm import LLMError, LLMManager
from feedback_insights.core.prompts import render_topic_prompt
from feedback_insights.schemas.insight import Snippet

# Configure logger for this module
logger = logging.getLogger(__name__)

MAX_SNIPPETS_PER_CALL = 2
MAX_RECOMMENDATIONS_PER_CALL = 3
DEFAULT_SNIPPET_RELEVANCE = 3


@dataclass
class TopicAnalysisResult:
    """Normalized outcome of analysing one chunk against one topic."""
    topic: str
    chunk_id: str
    relevance_score: int = 0
    snippets: List[Snippet] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    @classmethod
    def zero(cls, topic: str, chunk_id: str) -> "TopicAnalysisResult":
        return cls(topic=topic, chunk_id=chunk_id)


def _clamp_score(value: Any, default: int) -> int:
    """Coerce a model-supplied score to an int in [0, 5]."""
    if isinstance(value, bool):
        return default
    try:
        score = int(float(value))
    except (TypeError, ValueError):
        return default
    return max(0, min(5, score))


class TopicAnalyzer:
    """
    Scores a single chunk against a single topic with one LLM call.

    Every failure mode (unknown topic, missing provider configuration,
    timeout, provider error, unparsable output) is logged and turned into a
    zero result, so a bad call never aborts the batch it belongs to.
    """

    def __init__(self, gateway: Optional[LLMManager] = None):
        self.gateway = gateway

    def get_gateway(self) -> LLMManager:
        """The LLM gateway, built from settings on first use. Raises ConfigurationError."""
        if self.gateway is None:
            self.gateway = LLMManager.from_env()
        return self.gateway

    def analyze(self, chunk_content: str, chunk_id: str, topic: str, source_name: Optional[str] = None) -> TopicAnalysisResult:
        prompt = render_topic_prompt(topic, chunk_content)
        if prompt is None:
            logger.warning(f"TopicAnalyzer: No prompt for topic '{topic}', skipping chunk {chunk_id}.")
            return TopicAnalysisResult.zero(topic, chunk_id)

        try:
            raw = self.get_gateway().invoke(prompt)
        except LLMError as e:
            logger.error(f"TopicAnalyzer: LLM call failed for chunk {chunk_id} / {topic}: {e}")
            return TopicAnalysisResult.zero(topic, chunk_id)

        parsed = extract_json(raw, expect="object")
        if not parsed.ok:
            logger.warning(f"TopicAnalyzer: Could not parse response for chunk {chunk_id} / {topic}: {parsed.error}")
            return TopicAnalysisResult.zero(topic, chunk_id)

        return self._normalize(parsed.value, topic, chunk_id, source_name)

    def _normalize(self, data: dict, topic: str, chunk_id: str, source_name: Optional[str]) -> TopicAnalysisResult:
        result = TopicAnalysisResult(
            topic=topic,
            chunk_id=chunk_id,
            relevance_score=_clamp_score(data.get("relevance_score"), 0),
        )

        raw_snippets = data.get("snippets")
        if isinstance(raw_snippets, list):
            for item in raw_snippets:
                if len(result.snippets) >= MAX_SNIPPETS_PER_CALL:
                    break
                if isinstance(item, str):
                    text, relevance = item, DEFAULT_SNIPPET_RELEVANCE
                elif isinstance(item, dict):
                    text = item.get("text")
                    relevance = _clamp_score(item.get("relevance", DEFAULT_SNIPPET_RELEVANCE), DEFAULT_SNIPPET_RELEVANCE)
                else:
                    continue
                if not isinstance(text, str) or not text.strip():
                    continue
                result.snippets.append(Snippet(
                    text=text.strip(),
                    chunk_id=chunk_id,
                    relevance=relevance,
                    source=source_name,
                ))

        raw_recommendations = data.get("recommendations")
        if isinstance(raw_recommendations, list):
            result.recommendations = [
                r.strip() for r in raw_recommendations if isinstance(r, str) and r.strip()
            ][:MAX_RECOMMENDATIONS_PER_CALL]

        logger.debug(
            f"TopicAnalyzer: chunk {chunk_id} / {topic}: score={result.relevance_score}, "
            f"snippets={len(result.snippets)}, recommendations={len(result.recommendations)}"
        )
        return result
