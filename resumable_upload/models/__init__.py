"""Data models for MongoDB collections."""
from resumable_upload.models.base import MongoModel, utc_now
from resumable_upload.models.upload_session import ChunkRecord, UploadSession

__all__ = [
    # Base
    "MongoModel",
    "utc_now",
    # Upload models
    "UploadSession",
    "ChunkRecord"
]
