from pydantic import BaseModel
from typing import Dict, List, Optional


class SnippetRecord(BaseModel):
    """
    A stored quote or summary row, enriched with the chunk and file it came from.
    """
    id: str
    insight_type: str
    topic: str
    content: str
    relevance: Optional[int] = None
    source: Optional[str] = None
    chunk_id: Optional[str] = None
    created_at: Optional[str] = None
    original_date: Optional[str] = None
    file_id: Optional[int] = None
    file_name: Optional[str] = None


class SnippetFilters(BaseModel):
    topic: Optional[str] = None
    date: Optional[str] = None
    search: Optional[str] = None


class FilteredSnippetsResponse(BaseModel):
    snippets: List[SnippetRecord] = []
    total: int = 0
    limit: int
    offset: int
    filters: SnippetFilters = SnippetFilters()


class TimelineEntry(BaseModel):
    date: str
    total: int = 0
    topics: Dict[str, int] = {}


class DateRange(BaseModel):
    earliest: Optional[str] = None
    latest: Optional[str] = None


class TimelineStats(BaseModel):
    totalDates: int = 0
    totalSnippets: int = 0
    dateRange: DateRange = DateRange()


class SnippetTimelineResponse(BaseModel):
    timeline: List[TimelineEntry] = []
    stats: TimelineStats = TimelineStats()
