from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List, Literal, Any, Dict


class Snippet(BaseModel):
    """
    A quote taken from a feedback chunk, with the chunk it came from.
    """
    text: str = Field(..., description="The quoted feedback text.")
    chunk_id: str = Field(..., description="ID of the chunk the quote was taken from.")
    relevance: int = Field(3, ge=0, le=5, description="How strongly the quote matches its topic (0-5).")
    source: Optional[str] = Field(None, description="Person the feedback is attributed to, when one was found.")


class ChartDatum(BaseModel):
    name: str
    value: int


class TopicInsight(BaseModel):
    """
    Aggregated result of one analysis run for a single topic.

    `total_mentions` is the number of qualifying snippets. The chart value
    and the mentions label both read it, so it must equal len(snippets).
    """
    topic: str
    summary: str
    snippets: List[Snippet] = []
    recommendations: List[str] = []
    total_mentions: int = 0

    @model_validator(mode='after')
    def check_mentions_match_snippets(self) -> 'TopicInsight':
        if self.total_mentions != len(self.snippets):
            raise ValueError(
                f"total_mentions ({self.total_mentions}) must equal the number of snippets ({len(self.snippets)})"
            )
        return self


class TopicAnalysisResponse(BaseModel):
    """
    Response of the synchronous analysis endpoint, and the payload of the
    streaming endpoint's terminal `complete` frame.
    """
    chartData: List[ChartDatum] = []
    insights: List[TopicInsight] = []
    isDemo: bool = False
    source: Optional[str] = Field(None, description="'processed_chunks', 'database_insights' or 'demo'.")


class GroupedInsight(BaseModel):
    insight_statement: str
    quotes: List[Snippet] = []
    recommendations: List[str] = []


class GroupedTopicInsight(BaseModel):
    topic: str
    summary: str
    grouped_insights: List[GroupedInsight] = []
    recommendations: List[str] = []
    total_mentions: int = 0


class GroupedTopicResponse(BaseModel):
    chartData: List[ChartDatum] = []
    insights: List[GroupedTopicInsight] = []
    isDemo: bool = False


class Evaluation(BaseModel):
    """
    Judgment written into `metadata.eval` by the evaluation worker.
    Its presence marks the row as evaluated.
    """
    relevance: Literal["relevant", "unrelated"] = "relevant"
    hallucination: Literal["factual", "hallucinated"] = "factual"
    evaluated_at: str = Field(..., description="ISO-8601 timestamp of the evaluation.")
    mode: str = Field(..., description="Topic category (or insight type) the judgment was made against.")


class InsightMetadata(BaseModel):
    """
    Structured view of `llm_insights.metadata`.

    Every field is optional because the set that is present depends on the
    insight type. Unknown keys are kept so a round trip never drops data.
    """
    model_config = ConfigDict(extra="allow")

    topic: Optional[str] = None
    run_id: Optional[str] = None

    # quote rows
    chunk_id: Optional[str] = None
    relevance: Optional[int] = None
    source: Optional[str] = None

    # recommendation and summary rows
    summary: Optional[str] = None
    total_mentions: Optional[int] = None
    snippet_count: Optional[int] = None

    # grouped insight rows
    insight_index: Optional[int] = None
    quotes: Optional[List[Dict[str, Any]]] = None
    total_quotes: Optional[int] = None
    group_recommendations: Optional[List[str]] = None
    theme_recommendations: Optional[List[str]] = None

    eval: Optional[Evaluation] = None

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ProgressEvent(BaseModel):
    """
    One frame of the streaming analysis endpoint.
    """
    type: Literal["progress", "complete", "error", "keepalive"]
    message: str
    progress: Optional[float] = None
    data: Optional[TopicAnalysisResponse] = None

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"
