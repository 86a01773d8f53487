"""Pytest configuration and shared fixtures."""

import os
import json
import threading
from datetime import datetime, timezone

import pytest

# Set environment variables for testing BEFORE importing the app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["EVAL_WORKER_ENABLED"] = "false"

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedback_insights.db.session import Base
from feedback_insights.models.chunk import FileChunk, UploadedFile
from feedback_insights.models.insight import LLMInsight  # noqa: F401  (registers the table)


ZERO_RESULT = json.dumps({"relevance_score": 0, "snippets": [], "recommendations": []})


def topic_of_prompt(prompt: str):
    """Which analysis prompt this is, by its heading; None for non-analysis prompts."""
    if "EMOTIONAL PAIN POINTS" in prompt:
        return "Pain Points"
    if "IMPLEMENTATION BLOCKERS" in prompt:
        return "Blockers"
    if "EXPLICIT PRODUCT/SERVICE REQUESTS" in prompt:
        return "Customer Requests"
    if "specifically for SOLUTION FEEDBACK" in prompt:
        return "Solution Feedback"
    return None


def is_hallucination_prompt(prompt: str) -> bool:
    return "grounded in the source content" in prompt


def is_relevance_prompt(prompt: str) -> bool:
    return "correctly categorized under a specific topic category" in prompt


class StubGateway:
    """
    Stands in for LLMManager. `responder(prompt)` returns the completion text
    or raises; every prompt is recorded.
    """

    def __init__(self, responder=None):
        self.responder = responder or (lambda prompt: ZERO_RESULT)
        self.prompts = []
        self._lock = threading.Lock()

    def invoke(self, prompt: str) -> str:
        with self._lock:
            self.prompts.append(prompt)
        return self.responder(prompt)


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session and thread of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def uploaded_file(db):
    file = UploadedFile(name="interviews.csv", document_type="csv")
    db.add(file)
    db.commit()
    return file


@pytest.fixture
def add_chunk(db, uploaded_file):
    """Factory fixture: add_chunk(id, content, original_date=None, created_at=None)."""
    counter = {"n": 0}

    def _add(chunk_id, content, original_date=None, created_at=None):
        counter["n"] += 1
        chunk = FileChunk(
            id=chunk_id,
            file_id=uploaded_file.id,
            content=content,
            original_date=original_date,
            createdAt=created_at or datetime(2024, 1, 1, 12, 0, counter["n"], tzinfo=timezone.utc),
        )
        db.add(chunk)
        db.commit()
        return chunk

    return _add
