"""Client-side per-file upload state, read-only snapshots and the pause signal."""
import asyncio
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Optional, Set

from resumable_upload.core.exceptions import UploadCancelled
from resumable_upload.utils.chunking import count_chunks


class UploadStatus(str, Enum):
    """Lifecycle of one file: pending -> uploading -> completed | error | paused."""
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"
    PAUSED = "paused"


RESUMABLE_STATUSES = frozenset({UploadStatus.PENDING, UploadStatus.ERROR, UploadStatus.PAUSED})


@dataclass(frozen=True)
class FileUploadSnapshot:
    """Immutable view handed to presentation code."""
    file_id: str
    file_name: str
    file_size: int
    chunk_size: int
    total_chunks: int
    status: UploadStatus
    progress_percent: int
    session_id: Optional[str]
    completed_chunks: FrozenSet[int]
    retry_count: int
    error: Optional[str]

    @property
    def uploaded_bytes(self) -> int:
        """Bytes covered by completed chunks (the last chunk may be short)."""
        total = 0
        for index in self.completed_chunks:
            start = index * self.chunk_size
            total += min(self.chunk_size, self.file_size - start)
        return total


@dataclass
class FileUploadState:
    """Mutable per-file record. Only the orchestrator writes to it."""
    file_id: str
    path: Path
    file_name: str
    file_size: int
    chunk_size: int
    status: UploadStatus = UploadStatus.PENDING
    progress_percent: int = 0
    session_id: Optional[str] = None
    completed_chunks: Set[int] = field(default_factory=set)
    retry_count: int = 0
    error: Optional[str] = None

    @property
    def total_chunks(self) -> int:
        return count_chunks(self.file_size, self.chunk_size)

    def recompute_progress(self) -> int:
        """progress = round(100 * completed / total), halves rounded up."""
        self.progress_percent = math.floor(100 * len(self.completed_chunks) / self.total_chunks + 0.5)
        return self.progress_percent

    def snapshot(self) -> FileUploadSnapshot:
        return FileUploadSnapshot(
            file_id=self.file_id,
            file_name=self.file_name,
            file_size=self.file_size,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
            status=self.status,
            progress_percent=self.progress_percent,
            session_id=self.session_id,
            completed_chunks=frozenset(self.completed_chunks),
            retry_count=self.retry_count,
            error=self.error
        )


class CancellationToken:
    """Pause signal shared by every chunk pipeline of one upload run."""

    def __init__(self, file_id: str):
        self.file_id = file_id
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise UploadCancelled(self.file_id)

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early if cancelled."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
