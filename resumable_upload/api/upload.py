"""Chunked upload API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from resumable_upload.config import settings
from resumable_upload.core.exceptions import SessionNotFoundError
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
from resumable_upload.services.ledger_service import SessionLedger
from resumable_upload.services.minio_service import MinioService
from resumable_upload.services.verification_service import VerificationService
from resumable_upload.utils.chunking import count_chunks
from resumable_upload.utils.file_utils import is_valid_filename
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

router = APIRouter()


def get_ledger(request: Request) -> SessionLedger:
    return request.app.state.ledger


def get_broker(request: Request) -> MinioService:
    return request.app.state.broker


def get_verifier(request: Request) -> VerificationService:
    return request.app.state.verifier


def _server_error(message: str, exc: Exception) -> HTTPException:
    """Log the cause and hide it behind a generic 500."""
    logger.error(f"{message}: {exc}", exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@router.post("/init-upload", response_model=InitUploadResponse)
async def init_upload(request: InitUploadRequest, ledger: SessionLedger = Depends(get_ledger)):
    """
    Start a new upload session.

    Creates the session row and one incomplete chunk row per index.
    """
    if not is_valid_filename(request.file_name):
        raise HTTPException(status_code=422, detail="Invalid file name")
    if request.file_size > settings.max_upload_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.max_upload_size} bytes"
        )

    chunk_size = request.chunk_size or settings.upload_chunk_size
    expected_chunks = count_chunks(request.file_size, chunk_size)
    if request.total_chunks != expected_chunks:
        raise HTTPException(
            status_code=422,
            detail=f"totalChunks must be {expected_chunks} for fileSize {request.file_size} and chunkSize {chunk_size}"
        )

    try:
        session_id = await ledger.create_session(
            file_name=request.file_name,
            file_size=request.file_size,
            total_chunks=request.total_chunks,
            chunk_size=chunk_size
        )
    except Exception as e:
        raise _server_error("Failed to initialize upload", e)

    return InitUploadResponse(session_id=session_id)


@router.post("/presigned-url", response_model=GrantResponse)
async def presigned_url(request: GrantRequest, broker: MinioService = Depends(get_broker)):
    """
    Issue a time-bounded PUT authorization for one chunk object.

    The broker keeps no state and does not consult the ledger, so an unknown session id
    still gets a grant. Such objects are never counted: completion is only recorded
    for chunk rows created by /init-upload.
    """
    if not is_valid_filename(request.file_name):
        raise HTTPException(status_code=422, detail="Invalid file name")

    try:
        grant = await broker.issue_upload_grant(request.session_id, request.file_name, request.chunk_index)
    except Exception as e:
        raise _server_error("Failed to generate presigned URL", e)

    return GrantResponse(presigned_url=grant.url)


@router.post("/chunk-completed", response_model=ChunkCompletedResponse)
async def chunk_completed(request: ChunkCompletedRequest, ledger: SessionLedger = Depends(get_ledger)):
    """Mark a chunk as completed. Repeated or unknown pairs succeed without effect."""
    try:
        await ledger.mark_chunk_complete(request.session_id, request.chunk_index)
    except Exception as e:
        raise _server_error("Failed to mark chunk as completed", e)

    return ChunkCompletedResponse(success=True)


@router.post("/verify-upload", response_model=VerifyUploadResponse, response_model_exclude_none=True)
async def verify_upload(request: VerifyUploadRequest, verifier: VerificationService = Depends(get_verifier)):
    """Check whether every chunk of a session is complete and stamp the session if so."""
    try:
        result = await verifier.verify(request.session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    except Exception as e:
        raise _server_error("Failed to verify upload", e)

    return VerifyUploadResponse(completed=result.completed, progress=result.progress)


@router.get("/session/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(session_id: str, ledger: SessionLedger = Depends(get_ledger)):
    """
    Return the session record and its completed chunk indices.

    Clients use this to rebuild their local state before resuming.
    """
    try:
        session_status = await ledger.get_session(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    except Exception as e:
        raise _server_error("Failed to get session status", e)

    return SessionStatusResponse(
        **session_status.session.model_dump(),
        completed_chunks=session_status.completed_chunks
    )
