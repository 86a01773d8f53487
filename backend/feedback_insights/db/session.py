from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from feedback_insights.core.config import settings

# Create the SQLAlchemy engine.
# `check_same_thread` is SQLite-specific: request handlers, the streaming
# analysis thread and the evaluation worker each open their own session,
# but the pool may hand a connection to a different thread than created it.
_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args)

# A factory for sessions, not a session instance.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# All of our table models are subclasses of this Base.
Base = declarative_base()

# --- Dependency for getting a DB session ---
def get_db():
    """
    A dependency function that creates and yields a new database session
    for each request. It ensures the session is always closed, even if
    an error occurs.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """
    Dependency providing the session factory itself, for work that outlives
    the request (the streaming analysis opens its own session on a thread).
    """
    return SessionLocal


class StorageError(Exception):
    """Raised when a query or write against the insight/chunk store fails."""
    pass
