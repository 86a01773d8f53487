from sqlalchemy import Column, String, Text, Integer, ForeignKey, DateTime, func
from sqlalchemy.orm import relationship

from feedback_insights.db.session import Base

class UploadedFile(Base):
    """
    SQLAlchemy model for the 'uploaded_files' table.

    Rows are written by the ingestion pipeline; this service only reads them
    to attribute chunks and snippets to a source file.
    """
    __tablename__ = "uploaded_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    document_type = Column(String, nullable=True)
    createdAt = Column("created_at", DateTime(timezone=True), server_default=func.now())

    chunks = relationship("FileChunk", back_populates="file", cascade="all, delete-orphan")


class FileChunk(Base):
    """
    SQLAlchemy model for the 'file_chunks' table.

    A chunk is a bounded span of source text. It is immutable once ingested.
    """
    __tablename__ = "file_chunks"

    id = Column(String, primary_key=True, index=True)
    file_id = Column(Integer, ForeignKey("uploaded_files.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)

    # When the feedback was originally given, as opposed to upload time.
    original_date = Column(DateTime(timezone=True), nullable=True)

    createdAt = Column("created_at", DateTime(timezone=True), server_default=func.now())

    file = relationship("UploadedFile", back_populates="chunks")
