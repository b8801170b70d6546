"""Group-wise upload of every resumable file held by an orchestrator."""
import asyncio
import logging
from dataclasses import dataclass
from typing import List

from resumable_upload.client.orchestrator import UploadOrchestrator
from resumable_upload.client.state import RESUMABLE_STATUSES, FileUploadSnapshot, UploadStatus
from resumable_upload.config import MAX_PARALLEL_FILES
from resumable_upload.core.exceptions import ValidationException
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchSummary:
    total_files: int
    completed_files: int
    failed_files: int
    paused_files: int
    total_bytes: int
    uploaded_bytes: int


class BatchController:
    """Uploads pending, failed and paused files in groups of ``parallel_files``."""

    def __init__(self, orchestrator: UploadOrchestrator, parallel_files: int = MAX_PARALLEL_FILES):
        if parallel_files < 1:
            raise ValidationException("parallel_files must be at least 1", field="parallel_files")
        self.orchestrator = orchestrator
        self.parallel_files = parallel_files

    async def upload_all(self) -> List[FileUploadSnapshot]:
        """Run every eligible file; each group finishes before the next one starts."""
        eligible = [s.file_id for s in self.orchestrator.snapshots() if s.status in RESUMABLE_STATUSES]
        logger.info(f"Uploading {len(eligible)} file(s), {self.parallel_files} at a time")

        results: List[FileUploadSnapshot] = []
        for start in range(0, len(eligible), self.parallel_files):
            group = eligible[start:start + self.parallel_files]
            # upload_file never raises for upload failures; they end in the error state
            results.extend(await asyncio.gather(*(self.orchestrator.upload_file(fid) for fid in group)))

        summary = self.summary()
        logger.info(
            f"Batch finished: {summary.completed_files}/{summary.total_files} completed, "
            f"{summary.failed_files} failed, {summary.paused_files} paused"
        )
        return results

    def pause_all(self) -> None:
        for snapshot in self.orchestrator.snapshots():
            if snapshot.status == UploadStatus.UPLOADING:
                self.orchestrator.pause(snapshot.file_id)

    def summary(self) -> BatchSummary:
        snapshots = self.orchestrator.snapshots()
        return BatchSummary(
            total_files=len(snapshots),
            completed_files=sum(1 for s in snapshots if s.status == UploadStatus.COMPLETED),
            failed_files=sum(1 for s in snapshots if s.status == UploadStatus.ERROR),
            paused_files=sum(1 for s in snapshots if s.status == UploadStatus.PAUSED),
            total_bytes=sum(s.file_size for s in snapshots),
            uploaded_bytes=sum(s.uploaded_bytes for s in snapshots)
        )
