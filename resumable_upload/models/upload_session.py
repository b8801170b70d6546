"""Upload session and chunk ledger models."""
from datetime import datetime
from typing import ClassVar, Optional

from pydantic import Field

from .base import MongoModel, utc_now


class UploadSession(MongoModel):
    """One file's chunked-upload attempt, keyed by session id."""

    id_field: ClassVar[str] = "session_id"

    session_id: str = Field(..., description="Opaque unique session token")
    file_name: str = Field(..., description="Original filename")
    file_size: int = Field(..., gt=0, description="File total size in bytes")
    chunk_size: int = Field(..., gt=0, description="Chunk size in bytes")
    total_chunks: int = Field(..., ge=1, description="Number of chunks, fixed at creation")
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = Field(None, description="Set once when every chunk is complete")

    model_config = {
        "json_schema_extra": {
            "example": {
                "session_id": "9f1c2a7e3b4d5c6e7f8091a2b3c4d5e6",
                "file_name": "example.bin",
                "file_size": 12582912,
                "chunk_size": 5242880,
                "total_chunks": 3,
                "created_at": "2024-01-01T00:00:00Z",
                "completed_at": None
            }
        }
    }


class ChunkRecord(MongoModel):
    """Completion flag of one chunk, keyed by (session_id, chunk_index)."""

    session_id: str
    chunk_index: int = Field(..., ge=0)
    completed: bool = False
    completed_at: Optional[datetime] = None
