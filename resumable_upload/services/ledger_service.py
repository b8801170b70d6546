"""Session ledger: persistent record of upload sessions and per-chunk completion."""
import logging
import secrets
from dataclasses import dataclass
from typing import Callable, List, Protocol

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from resumable_upload.core.decorators import async_exception_handler, async_performance_monitor
from resumable_upload.core.exceptions import (
    PersistenceError,
    SessionIdCollisionError,
    SessionNotFoundError,
)
from resumable_upload.models.base import utc_now
from resumable_upload.models.upload_session import ChunkRecord, UploadSession
from resumable_upload.services.db_service import CHUNKS_COLLECTION, SESSIONS_COLLECTION
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


def new_session_id() -> str:
    """Random 128-bit session token, hex encoded."""
    return secrets.token_hex(16)


@dataclass
class SessionStatus:
    """A session record together with the indices of its completed chunks."""
    session: UploadSession
    completed_chunks: List[int]


class SessionLedger(Protocol):
    """Contract shared by ledger implementations."""

    async def create_session(self, file_name: str, file_size: int, total_chunks: int, chunk_size: int) -> str: ...

    async def mark_chunk_complete(self, session_id: str, chunk_index: int) -> bool: ...

    async def get_session(self, session_id: str) -> SessionStatus: ...

    async def get_session_record(self, session_id: str) -> UploadSession: ...

    async def count_completed_chunks(self, session_id: str) -> int: ...

    async def stamp_completed(self, session_id: str) -> bool: ...


class MongoSessionLedger:
    """MongoDB-backed SessionLedger implementation."""

    def __init__(self, db: AsyncIOMotorDatabase, id_factory: Callable[[], str] = new_session_id):
        self.sessions = db[SESSIONS_COLLECTION]
        self.chunks = db[CHUNKS_COLLECTION]
        self.id_factory = id_factory

    @async_exception_handler(PersistenceError, "Failed to create upload session")
    @async_performance_monitor("ledger.create_session")
    async def create_session(self, file_name: str, file_size: int, total_chunks: int, chunk_size: int) -> str:
        """
        Insert a session row plus one incomplete chunk row per index.

        The session insert comes first so an id collision is detected before any chunk
        row is written; a failed chunk insert removes the session row again.

        Returns:
            str: The new session id.

        Raises:
            SessionIdCollisionError: the generated id already exists.
            PersistenceError: the ledger could not be written.
        """
        session = UploadSession(
            session_id=self.id_factory(),
            file_name=file_name,
            file_size=file_size,
            chunk_size=chunk_size,
            total_chunks=total_chunks
        )

        try:
            await self.sessions.insert_one(session.to_mongo_dict())
        except DuplicateKeyError:
            logger.error(f"Generated session id already exists: {session.session_id}")
            raise SessionIdCollisionError(session.session_id)

        chunk_rows = [
            ChunkRecord(session_id=session.session_id, chunk_index=i).to_mongo_dict()
            for i in range(total_chunks)
        ]
        try:
            await self.chunks.insert_many(chunk_rows, ordered=False)
        except PyMongoError as e:
            logger.error(f"Chunk rows for session {session.session_id} failed, rolling back: {e}")
            await self.chunks.delete_many({"session_id": session.session_id})
            await self.sessions.delete_one({"_id": session.session_id})
            raise PersistenceError(
                f"Failed to initialize chunk records: {e}",
                operation="create_session",
                details={"session_id": session.session_id},
                original_error=e
            )

        logger.info(f"Created upload session {session.session_id} for {file_name} ({total_chunks} chunks)")
        return session.session_id

    @async_exception_handler(PersistenceError, "Failed to mark chunk as completed")
    @async_performance_monitor("ledger.mark_chunk_complete")
    async def mark_chunk_complete(self, session_id: str, chunk_index: int) -> bool:
        """
        Flag a chunk as completed. Idempotent; unknown pairs are a no-op.

        Returns:
            bool: True if this call flipped the flag, False if it was already set or absent.
        """
        result = await self.chunks.update_one(
            {"session_id": session_id, "chunk_index": chunk_index, "completed": False},
            {"$set": {"completed": True, "completed_at": utc_now()}}
        )
        if result.modified_count:
            logger.debug(f"Chunk {chunk_index} of session {session_id} completed")
            return True

        logger.debug(f"Chunk completion no-op for {session_id}:{chunk_index}")
        return False

    @async_exception_handler(PersistenceError, "Failed to read upload session")
    async def get_session_record(self, session_id: str) -> UploadSession:
        data = await self.sessions.find_one({"_id": session_id})
        if data is None:
            raise SessionNotFoundError(session_id)
        return UploadSession.from_mongo_dict(data)

    @async_exception_handler(PersistenceError, "Failed to read upload session")
    @async_performance_monitor("ledger.get_session")
    async def get_session(self, session_id: str) -> SessionStatus:
        """Return session metadata and sorted completed chunk indices."""
        session = await self.get_session_record(session_id)

        cursor = self.chunks.find(
            {"session_id": session_id, "completed": True},
            {"chunk_index": 1, "_id": 0}
        )
        completed = sorted([row["chunk_index"] async for row in cursor])
        return SessionStatus(session=session, completed_chunks=completed)

    @async_exception_handler(PersistenceError, "Failed to count completed chunks")
    async def count_completed_chunks(self, session_id: str) -> int:
        return await self.chunks.count_documents({"session_id": session_id, "completed": True})

    @async_exception_handler(PersistenceError, "Failed to stamp session completion")
    async def stamp_completed(self, session_id: str) -> bool:
        """Set completed_at if it is still unset. Returns True only on the first stamp."""
        result = await self.sessions.update_one(
            {"_id": session_id, "completed_at": None},
            {"$set": {"completed_at": utc_now()}}
        )
        return bool(result.modified_count)

