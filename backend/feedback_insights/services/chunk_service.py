import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from feedback_insights.db.session import StorageError
from feedback_insights.models.chunk import FileChunk

# Configure logger for this module
logger = logging.getLogger(__name__)


class ChunkService:
    """
    Read-only access to ingested feedback chunks.
    """

    def list_chunks(self, db: Session, limit: Optional[int] = None) -> List[FileChunk]:
        """
        Returns chunks newest first, with their source file loaded.
        """
        try:
            query = (
                db.query(FileChunk)
                .options(joinedload(FileChunk.file))
                .order_by(FileChunk.createdAt.desc(), FileChunk.id)
            )
            if limit is not None:
                query = query.limit(limit)
            chunks = query.all()
        except SQLAlchemyError as e:
            logger.error(f"ChunkService: Failed to list chunks: {e}", exc_info=True)
            raise StorageError(f"Failed to list chunks: {e}") from e
        logger.debug(f"ChunkService: Listed {len(chunks)} chunks.")
        return chunks

    def count_chunks(self, db: Session) -> int:
        try:
            return db.query(FileChunk).count()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count chunks: {e}") from e

    def get_chunk_content(self, db: Session, chunk_id: str) -> Optional[str]:
        if not chunk_id:
            return None
        try:
            chunk = db.query(FileChunk).filter(FileChunk.id == chunk_id).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load chunk {chunk_id}: {e}") from e
        return chunk.content if chunk else None

    def get_chunks(self, db: Session, chunk_ids: Iterable[str]) -> Dict[str, FileChunk]:
        """Chunks keyed by id; unknown ids are simply absent."""
        ids = sorted({c for c in chunk_ids if c})
        if not ids:
            return {}
        try:
            chunks = (
                db.query(FileChunk)
                .options(joinedload(FileChunk.file))
                .filter(FileChunk.id.in_(ids))
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load chunks: {e}") from e
        return {chunk.id: chunk for chunk in chunks}


# Create a single instance of the service
chunk_service = ChunkService()

def get_chunk_service():
    """
    Dependency function to provide the chunk service instance.
    """
    return chunk_service
