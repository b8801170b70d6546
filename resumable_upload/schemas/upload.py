"""Upload-related request and response schemas (camelCase on the wire)."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Accept both camelCase aliases and field names."""
    model_config = ConfigDict(populate_by_name=True)


class InitUploadRequest(WireModel):
    """Body of POST /init-upload."""
    file_name: str = Field(..., alias="fileName", min_length=1, description="Original filename")
    file_size: int = Field(..., alias="fileSize", gt=0, description="File size in bytes")
    total_chunks: int = Field(..., alias="totalChunks", ge=1, description="Number of chunks")
    chunk_size: Optional[int] = Field(None, alias="chunkSize", gt=0, description="Chunk size used by the client")


class InitUploadResponse(WireModel):
    session_id: str = Field(..., alias="sessionId")


class GrantRequest(WireModel):
    """Body of POST /presigned-url."""
    file_name: str = Field(..., alias="fileName", min_length=1)
    chunk_index: int = Field(..., alias="chunkIndex", ge=0)
    session_id: str = Field(..., alias="sessionId", min_length=1)


class GrantResponse(WireModel):
    presigned_url: str = Field(..., alias="presignedUrl")


class ChunkCompletedRequest(WireModel):
    """Body of POST /chunk-completed."""
    session_id: str = Field(..., alias="sessionId", min_length=1)
    chunk_index: int = Field(..., alias="chunkIndex", ge=0)


class ChunkCompletedResponse(WireModel):
    success: bool = True


class VerifyUploadRequest(WireModel):
    """Body of POST /verify-upload."""
    session_id: str = Field(..., alias="sessionId", min_length=1)


class VerifyUploadResponse(WireModel):
    completed: bool
    progress: Optional[float] = Field(None, description="completed / total while incomplete")


class SessionStatusResponse(WireModel):
    """Session record plus the indices of completed chunks."""
    session_id: str
    file_name: str
    file_size: int
    chunk_size: int
    total_chunks: int
    created_at: datetime
    completed_at: Optional[datetime] = None
    completed_chunks: List[int] = Field(default_factory=list, alias="completedChunks")
