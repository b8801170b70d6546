"""Authorization broker: issues time-bounded presigned PUT grants for chunk objects."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from minio import Minio

from resumable_upload.config import settings
from resumable_upload.core.config import MinioConfig
from resumable_upload.core.decorators import async_exception_handler, async_performance_monitor
from resumable_upload.core.exceptions import AuthorizationFailure
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


def build_object_key(session_id: str, file_name: str, chunk_index: int) -> str:
    """Deterministic object key of one chunk: ``{session_id}/{file_name}.part{chunk_index}``."""
    return f"{session_id}/{file_name}.part{chunk_index}"


@dataclass(frozen=True)
class UploadGrant:
    """A presigned single-object write authorization."""
    object_key: str
    url: str
    expires_at: datetime


class MinioService:
    """Signs chunk uploads against the configured bucket. Holds no session state."""

    def __init__(self, config: Optional[MinioConfig] = None, client: Optional[Minio] = None):
        self.config = config or settings.get_minio_config()
        self.bucket_name = self.config.bucket_name
        self.expiry = timedelta(seconds=self.config.grant_expiry_seconds)

        # Signing is local when a region is configured; without one the SDK looks it up once
        self.client = client or Minio(
            self.config.endpoint,
            access_key=self.config.access_key,
            secret_key=self.config.secret_key,
            secure=self.config.secure,
            region=self.config.region
        )

        logger.info(f"MinIO signer ready for bucket '{self.bucket_name}' (grant expiry {self.expiry})")

    @async_exception_handler(AuthorizationFailure, "Failed to generate presigned URL")
    @async_performance_monitor("broker.issue_upload_grant")
    async def issue_upload_grant(self, session_id: str, file_name: str, chunk_index: int) -> UploadGrant:
        """
        Request a presigned PUT URL for one chunk object.

        Raises:
            AuthorizationFailure: the signing call failed.
        """
        object_key = build_object_key(session_id, file_name, chunk_index)
        issued_at = datetime.now(timezone.utc)

        # The SDK call is blocking (region lookup may hit the network)
        url = await asyncio.to_thread(
            self.client.presigned_put_object,
            self.bucket_name,
            object_key,
            expires=self.expiry
        )

        logger.info(f"Issued upload grant for {object_key}")
        return UploadGrant(object_key=object_key, url=url, expires_at=issued_at + self.expiry)
