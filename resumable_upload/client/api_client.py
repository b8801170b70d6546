"""Asynchronous HTTP client for the upload broker and direct presigned PUTs."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Type

import aiohttp
from yarl import URL

from resumable_upload.core.exceptions import (
    AuthorizationFailure,
    SessionNotFoundError,
    TransferFailure,
    UploadException,
)
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

# A ClientTimeout expiring surfaces as asyncio.TimeoutError, not as a ClientError
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


@dataclass(frozen=True)
class RemoteSession:
    """Ledger view of a session, used to rebuild local state on resume."""
    session_id: str
    file_name: str
    file_size: int
    chunk_size: int
    total_chunks: int
    completed_chunks: List[int]
    completed_at: Optional[str] = None


@dataclass(frozen=True)
class VerifyResult:
    completed: bool
    progress: Optional[float] = None


class UploadApi(Protocol):
    """Operations the orchestrator needs from the broker and the storage service."""

    async def init_upload(self, file_name: str, file_size: int, total_chunks: int, chunk_size: int) -> str: ...

    async def request_grant(self, session_id: str, file_name: str, chunk_index: int) -> str: ...

    async def put_chunk(self, url: str, data: bytes) -> None: ...

    async def notify_chunk_completed(self, session_id: str, chunk_index: int) -> None: ...

    async def verify_upload(self, session_id: str) -> VerifyResult: ...

    async def get_session(self, session_id: str) -> RemoteSession: ...


class UploadApiClient:
    """aiohttp implementation of UploadApi, used as an async context manager."""

    def __init__(
        self,
        api_url: str,
        request_timeout: int = 300,
        connection_pool_size: int = 100
    ):
        """
        Args:
            api_url: Base URL of the upload broker.
            request_timeout: Total timeout per request in seconds.
            connection_pool_size: aiohttp connection pool size.
        """
        self.api_url = api_url.rstrip("/")
        self.request_timeout = request_timeout
        self.connection_pool_size = connection_pool_size

        # aiohttp session placeholder (initialized in __aenter__)
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        connector = aiohttp.TCPConnector(
            limit=self.connection_pool_size,
            limit_per_host=50,
            keepalive_timeout=30
        )
        timeout = aiohttp.ClientTimeout(total=self.request_timeout, connect=60)
        self.session = aiohttp.ClientSession(connector=connector, timeout=timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            raise RuntimeError("UploadApiClient must be used as an async context manager")
        return self.session

    async def _post_json(
        self,
        path: str,
        payload: Dict[str, Any],
        failure: Type[UploadException],
        message: str
    ) -> Dict[str, Any]:
        """POST a JSON body to the broker; any transport error or non-2xx becomes ``failure``."""
        session = self._require_session()
        try:
            async with session.post(f"{self.api_url}{path}", json=payload) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise failure(f"{message}: HTTP {response.status}", details={"status": response.status,
                                                                                "body": body[:500]})
                return await response.json()
        except TRANSPORT_ERRORS as e:
            raise failure(f"{message}: {e}", original_error=e) from e

    async def init_upload(self, file_name: str, file_size: int, total_chunks: int, chunk_size: int) -> str:
        data = await self._post_json(
            "/init-upload",
            {"fileName": file_name, "fileSize": file_size, "totalChunks": total_chunks, "chunkSize": chunk_size},
            TransferFailure,
            "Failed to initialize upload session"
        )
        return data["sessionId"]

    async def request_grant(self, session_id: str, file_name: str, chunk_index: int) -> str:
        data = await self._post_json(
            "/presigned-url",
            {"fileName": file_name, "chunkIndex": chunk_index, "sessionId": session_id},
            AuthorizationFailure,
            "Failed to obtain upload grant"
        )
        return data["presignedUrl"]

    async def put_chunk(self, url: str, data: bytes) -> None:
        """PUT chunk bytes straight to the storage service using a presigned URL."""
        session = self._require_session()
        try:
            # The signature covers the exact query string, so it must not be re-quoted
            async with session.put(URL(url, encoded=True), data=data) as response:
                if response.status >= 400:
                    raise TransferFailure("Chunk upload failed", status=response.status)
        except TRANSPORT_ERRORS as e:
            raise TransferFailure(f"Chunk upload failed: {e}", original_error=e) from e

    async def notify_chunk_completed(self, session_id: str, chunk_index: int) -> None:
        await self._post_json(
            "/chunk-completed",
            {"sessionId": session_id, "chunkIndex": chunk_index},
            TransferFailure,
            "Failed to report chunk completion"
        )

    async def verify_upload(self, session_id: str) -> VerifyResult:
        data = await self._post_json(
            "/verify-upload",
            {"sessionId": session_id},
            TransferFailure,
            "Upload verification failed"
        )
        return VerifyResult(completed=bool(data.get("completed")), progress=data.get("progress"))

    async def get_session(self, session_id: str) -> RemoteSession:
        session = self._require_session()
        try:
            async with session.get(f"{self.api_url}/session/{session_id}") as response:
                if response.status == 404:
                    raise SessionNotFoundError(session_id)
                if response.status >= 400:
                    raise TransferFailure("Failed to get session status", status=response.status)
                data = await response.json()
        except TRANSPORT_ERRORS as e:
            raise TransferFailure(f"Failed to get session status: {e}", original_error=e) from e

        return RemoteSession(
            session_id=data["session_id"],
            file_name=data["file_name"],
            file_size=data["file_size"],
            chunk_size=data["chunk_size"],
            total_chunks=data["total_chunks"],
            completed_chunks=sorted(data.get("completedChunks", [])),
            completed_at=data.get("completed_at")
        )
