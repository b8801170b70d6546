"""Pydantic schemas for API requests and responses."""
from resumable_upload.schemas.upload import (
    ChunkCompletedRequest,
    ChunkCompletedResponse,
    GrantRequest,
    GrantResponse,
    InitUploadRequest,
    InitUploadResponse,
    SessionStatusResponse,
    VerifyUploadRequest,
    VerifyUploadResponse,
)

__all__ = [
    "InitUploadRequest",
    "InitUploadResponse",
    "GrantRequest",
    "GrantResponse",
    "ChunkCompletedRequest",
    "ChunkCompletedResponse",
    "VerifyUploadRequest",
    "VerifyUploadResponse",
    "SessionStatusResponse",
]
