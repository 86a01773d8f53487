from sqlalchemy import Column, String, Text, Integer, ForeignKey, DateTime, func, JSON

from feedback_insights.db.session import Base

class LLMInsight(Base):
    """
    SQLAlchemy model for the 'llm_insights' table.

    Each row is one unit of derived content: a quote, a recommendation, a
    topic summary or a grouped insight. `insight_type` is the topic key plus
    a suffix, e.g. 'blockers_quote' or 'pain_points_grouped_insight'.
    """
    __tablename__ = "llm_insights"

    # The unique identifier for the insight, "insight_<hex>".
    id = Column(String, primary_key=True, index=True)

    # Analysis-derived insights have no single owning file.
    file_id = Column(Integer, ForeignKey("uploaded_files.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String, nullable=True)

    insight_type = Column(String, nullable=False, index=True)

    # The quote text, recommendation text, summary or insight statement.
    content = Column(Text, nullable=False)

    # Loosely-typed bag: topic, chunk_id, relevance, run_id, ... and, once
    # the evaluation worker has seen the row, an `eval` sub-object.
    # `metadata` is reserved on declarative classes, hence the attribute name.
    insight_metadata = Column("metadata", JSON, nullable=False, default=dict)

    createdAt = Column("created_at", DateTime(timezone=True), server_default=func.now())
