"""Upload client: broker API client, per-file orchestrator, batch controller and CLI."""
from resumable_upload.client.api_client import RemoteSession, UploadApi, UploadApiClient, VerifyResult
from resumable_upload.client.batch import BatchController, BatchSummary
from resumable_upload.client.orchestrator import UploadOrchestrator
from resumable_upload.client.state import CancellationToken, FileUploadSnapshot, FileUploadState, UploadStatus

__all__ = [
    "RemoteSession",
    "UploadApi",
    "UploadApiClient",
    "VerifyResult",
    "BatchController",
    "BatchSummary",
    "UploadOrchestrator",
    "CancellationToken",
    "FileUploadSnapshot",
    "FileUploadState",
    "UploadStatus",
]
