from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class RelevanceStats(BaseModel):
    relevant: int = 0
    unrelated: int = 0


class HallucinationStats(BaseModel):
    factual: int = 0
    hallucinated: int = 0


class CategoryStats(BaseModel):
    total: int = 0
    evaluated: int = 0
    relevant: int = 0
    factual: int = 0
    relevanceRate: int = Field(0, description="Percentage of evaluated rows judged relevant.")
    factualRate: int = Field(0, description="Percentage of evaluated rows judged factual.")


class PerformanceMetrics(BaseModel):
    overallRelevanceRate: int = 0
    overallFactualRate: int = 0
    evaluationCoverage: int = Field(0, description="Percentage of all rows that have been evaluated.")


class EvaluationRecord(BaseModel):
    id: str
    insight_type: str
    category: str
    content: str
    relevance: str
    hallucination: str
    evaluated_at: Optional[str] = None
    mode: Optional[str] = None


class EvaluationStatus(BaseModel):
    """
    Aggregate view of evaluation progress and outcomes across every insight row.
    """
    status: str
    worker_enabled: bool
    totalInsights: int = 0
    evaluatedInsights: int = 0
    unevaluatedInsights: int = 0
    relevanceStats: RelevanceStats = RelevanceStats()
    hallucinationStats: HallucinationStats = HallucinationStats()
    byCategory: Dict[str, CategoryStats] = {}
    performanceMetrics: PerformanceMetrics = PerformanceMetrics()
    recentEvaluations: List[EvaluationRecord] = []
    allEvaluations: List[EvaluationRecord] = []
    last_updated: str


class TickReportOut(BaseModel):
    skipped: bool = False
    selected: int = 0
    evaluated: int = 0
    failed: int = 0
    relevant: int = 0
    unrelated: int = 0
    factual: int = 0
    hallucinated: int = 0
    by_category: Dict[str, int] = {}
    duration_seconds: float = 0.0


class ResetResult(BaseModel):
    success: bool = True
    reset_count: int = 0
    message: str
