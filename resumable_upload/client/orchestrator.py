"""Per-file upload state machine: chunking, windowed dispatch, retry with backoff, pause/resume."""
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Union

from resumable_upload.client.api_client import UploadApi
from resumable_upload.client.state import (
    CancellationToken,
    FileUploadSnapshot,
    FileUploadState,
    UploadStatus,
)
from resumable_upload.config import (
    CHUNK_SIZE,
    INITIAL_RETRY_DELAY,
    MAX_FILES,
    MAX_PARALLEL_CHUNKS,
    MAX_RETRIES,
    settings,
)
from resumable_upload.core.exceptions import (
    TransferFailure,
    UploadCancelled,
    ValidationException,
    VerificationMismatch,
)
from resumable_upload.core.patterns import (
    UPLOAD_COMPLETED,
    UPLOAD_FAILED,
    UPLOAD_PAUSED,
    UPLOAD_PROGRESS,
    UPLOAD_STARTED,
    Observable,
)
from resumable_upload.utils.chunking import ChunkRange, split_into_chunks
from resumable_upload.utils.file_utils import describe_file, read_file_range
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "Upload failed"

SleepFunc = Callable[[float], Awaitable[None]]


class UploadOrchestrator(Observable):
    """
    Drives the chunked upload of every file in its state table.

    Flow per file:
    - acquire a session (reuse a known one on resume, otherwise init-upload)
    - dispatch chunks in windows of ``parallel_chunks``, skipping completed indices
    - per chunk: grant -> PUT -> completion notice, retried with exponential backoff
    - verify once every chunk has been attempted

    Pausing cancels the run's token; pipelines stop at their next checkpoint.
    """

    def __init__(
        self,
        api: UploadApi,
        chunk_size: int = CHUNK_SIZE,
        parallel_chunks: int = MAX_PARALLEL_CHUNKS,
        max_retries: int = MAX_RETRIES,
        initial_retry_delay: float = INITIAL_RETRY_DELAY,
        verify_attempts: int = settings.client_verify_attempts,
        max_files: int = MAX_FILES,
        sleep: Optional[SleepFunc] = None
    ):
        """
        Args:
            api: Broker/storage operations.
            chunk_size: Chunk size for new sessions.
            parallel_chunks: Window width for concurrent chunk pipelines.
            max_retries: Extra attempts per chunk after the first failure.
            initial_retry_delay: Backoff base in seconds, doubled per retry.
            verify_attempts: Verification calls before giving up on an incomplete session.
            max_files: Upper bound on files held in the state table.
            sleep: Replacement for the cancellable backoff sleep (tests).
        """
        super().__init__()
        if parallel_chunks < 1:
            raise ValidationException("parallel_chunks must be at least 1", field="parallel_chunks")

        self.api = api
        self.chunk_size = chunk_size
        self.parallel_chunks = parallel_chunks
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.verify_attempts = verify_attempts
        self.max_files = max_files
        self._sleep = sleep

        self._states: Dict[str, FileUploadState] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # State table

    def add_file(self, path: Union[str, Path]) -> str:
        """Register a local file as pending and return its id."""
        info = describe_file(path)
        file_id = str(info.path.resolve())
        if file_id in self._states:
            raise ValidationException(f"File already queued: {file_id}", field="path")
        if len(self._states) >= self.max_files:
            raise ValidationException(f"Too many files: at most {self.max_files} can be queued", field="path")

        self._states[file_id] = FileUploadState(
            file_id=file_id,
            path=info.path,
            file_name=info.name,
            file_size=info.size,
            chunk_size=self.chunk_size
        )
        self._locks[file_id] = asyncio.Lock()
        logger.debug(f"Queued {info.name} ({info.size} bytes)")
        return file_id

    def remove_file(self, file_id: str) -> None:
        """Drop a file from the table, stopping its run if one is in flight."""
        token = self._tokens.pop(file_id, None)
        if token is not None:
            token.cancel()
        self._states.pop(file_id, None)
        self._locks.pop(file_id, None)

    def snapshot(self, file_id: str) -> FileUploadSnapshot:
        return self._get_state(file_id).snapshot()

    def snapshots(self) -> List[FileUploadSnapshot]:
        return [state.snapshot() for state in self._states.values()]

    def _get_state(self, file_id: str) -> FileUploadState:
        try:
            return self._states[file_id]
        except KeyError:
            raise ValidationException(f"Unknown file: {file_id}", field="file_id")

    # Lifecycle

    def pause(self, file_id: str) -> None:
        """Mark an uploading file paused and signal its pipelines to stop."""
        state = self._get_state(file_id)
        if state.status != UploadStatus.UPLOADING:
            logger.debug(f"Pause ignored for {state.file_name} in state {state.status.value}")
            return

        state.status = UploadStatus.PAUSED
        token = self._tokens.get(file_id)
        if token is not None:
            token.cancel()
        logger.info(f"Pausing {state.file_name}")

    async def resume(self, file_id: str) -> FileUploadSnapshot:
        """Re-run the upload; completed chunks are carried forward."""
        return await self.upload_file(file_id)

    async def restore(self, file_id: str, session_id: str) -> FileUploadSnapshot:
        """
        Rebuild a file's session id and completed chunks from the ledger.

        Raises:
            SessionNotFoundError: the ledger has no such session.
            ValidationException: the session belongs to a different file.
        """
        state = self._get_state(file_id)
        remote = await self.api.get_session(session_id)
        if remote.file_name != state.file_name or remote.file_size != state.file_size:
            raise ValidationException(
                f"Session {session_id} was created for {remote.file_name} ({remote.file_size} bytes)",
                field="session_id"
            )

        state.session_id = remote.session_id
        state.chunk_size = remote.chunk_size
        state.completed_chunks = set(remote.completed_chunks)
        state.recompute_progress()
        state.error = None
        state.status = UploadStatus.COMPLETED if remote.completed_at else UploadStatus.PAUSED
        logger.info(
            f"Restored {state.file_name} from session {session_id}: "
            f"{len(state.completed_chunks)}/{state.total_chunks} chunks complete"
        )
        return state.snapshot()

    async def upload_file(self, file_id: str) -> FileUploadSnapshot:
        """
        Upload (or resume) one file and return its final snapshot.

        Failures end in ``error``, a pause ends in ``paused``; neither is raised.
        """
        state = self._get_state(file_id)
        lock = self._locks[file_id]

        # A previous run that was paused keeps the lock until its pipelines drain
        async with lock:
            if state.status == UploadStatus.COMPLETED:
                return state.snapshot()

            token = CancellationToken(file_id)
            self._tokens[file_id] = token
            try:
                await self._run(state, token)
            except UploadCancelled:
                state.status = UploadStatus.PAUSED
                logger.info(f"Upload paused: {state.file_name} at {state.progress_percent}%")
                await self.notify(UPLOAD_PAUSED, self._event_data(state))
            except Exception as e:
                logger.error(f"Upload failed: {state.file_name}: {e}")
                state.status = UploadStatus.ERROR
                state.error = GENERIC_ERROR_MESSAGE
                await self.notify(UPLOAD_FAILED, {**self._event_data(state), "error": str(e)})
            finally:
                if self._tokens.get(file_id) is token:
                    del self._tokens[file_id]

        return state.snapshot()

    async def _run(self, state: FileUploadState, token: CancellationToken) -> None:
        state.status = UploadStatus.UPLOADING
        state.error = None
        token.raise_if_cancelled()

        if state.session_id is None:
            state.session_id = await self.api.init_upload(
                state.file_name, state.file_size, state.total_chunks, state.chunk_size
            )
            logger.info(f"Started session {state.session_id} for {state.file_name} ({state.total_chunks} chunks)")
        else:
            logger.info(
                f"Resuming session {state.session_id} for {state.file_name}: "
                f"{len(state.completed_chunks)}/{state.total_chunks} chunks already complete"
            )
        await self.notify(UPLOAD_STARTED, self._event_data(state))

        chunks = split_into_chunks(state.file_size, state.chunk_size)
        failed: List[int] = []

        for start in range(0, len(chunks), self.parallel_chunks):
            token.raise_if_cancelled()

            window = [c for c in chunks[start:start + self.parallel_chunks] if c.index not in state.completed_chunks]
            if not window:
                continue

            results = await asyncio.gather(
                *(self._upload_chunk_with_retry(state, chunk, token) for chunk in window),
                return_exceptions=True
            )

            cancelled = False
            for chunk, result in zip(window, results):
                if result is True:
                    state.completed_chunks.add(chunk.index)
                elif isinstance(result, UploadCancelled):
                    cancelled = True
                elif isinstance(result, BaseException) and not isinstance(result, Exception):
                    raise result
                else:
                    failed.append(chunk.index)

            state.recompute_progress()
            logger.info(
                f"{state.file_name}: {len(state.completed_chunks)}/{state.total_chunks} chunks, {state.progress_percent}%"
            )
            await self.notify(UPLOAD_PROGRESS, self._event_data(state))

            if cancelled:
                raise UploadCancelled(state.file_id)

        if failed:
            raise TransferFailure(
                f"{len(failed)} chunk(s) failed after {self.max_retries} retries",
                details={"failed_chunks": failed}
            )

        await self._finalize(state, token)

    async def _upload_chunk_with_retry(
        self,
        state: FileUploadState,
        chunk: ChunkRange,
        token: CancellationToken
    ) -> bool:
        """
        Run one chunk pipeline, retrying up to ``max_retries`` extra times.

        The delay before retry ``n`` (0-based) is ``initial_retry_delay * 2**n``. Once the
        PUT has succeeded only the completion notice is repeated.

        Returns:
            bool: True once the ledger acknowledged the chunk, False after exhaustion.

        Raises:
            UploadCancelled: the file was paused.
        """
        transferred = False

        for attempt in range(self.max_retries + 1):
            try:
                if not transferred:
                    token.raise_if_cancelled()
                    url = await self.api.request_grant(state.session_id, state.file_name, chunk.index)

                    token.raise_if_cancelled()
                    data = await read_file_range(state.path, chunk.start, chunk.size)
                    await self.api.put_chunk(url, data)
                    transferred = True

                await self.api.notify_chunk_completed(state.session_id, chunk.index)
                return True

            except UploadCancelled:
                raise
            except Exception as e:
                if attempt == self.max_retries:
                    logger.error(f"Chunk {chunk.index} of {state.file_name} failed after {attempt + 1} attempts: {e}")
                    return False

                delay = self.initial_retry_delay * (2 ** attempt)
                state.retry_count += 1
                logger.warning(
                    f"Chunk {chunk.index} of {state.file_name} attempt {attempt + 1} failed, "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await self._backoff(delay, token)

        return False

    async def _finalize(self, state: FileUploadState, token: CancellationToken) -> None:
        """Verify with the ledger; an incomplete session is re-checked, then reconciled."""
        result = None
        for attempt in range(self.verify_attempts):
            token.raise_if_cancelled()
            result = await self.api.verify_upload(state.session_id)
            if result.completed:
                state.completed_chunks = set(range(state.total_chunks))
                state.progress_percent = 100
                state.status = UploadStatus.COMPLETED
                logger.info(f"Upload completed: {state.file_name} (session {state.session_id})")
                await self.notify(UPLOAD_COMPLETED, self._event_data(state))
                return

            logger.warning(
                f"Session {state.session_id} reported incomplete ({result.progress}), "
                f"verification attempt {attempt + 1}/{self.verify_attempts}"
            )
            if attempt < self.verify_attempts - 1:
                await self._backoff(self.initial_retry_delay, token)

        # The ledger is authoritative: only chunks it has recorded count as done
        remote = await self.api.get_session(state.session_id)
        state.completed_chunks = set(remote.completed_chunks)
        state.recompute_progress()
        raise VerificationMismatch(state.session_id, result.progress if result else None)

    async def _backoff(self, delay: float, token: CancellationToken) -> None:
        if self._sleep is not None:
            await self._sleep(delay)
        else:
            await token.sleep(delay)
        token.raise_if_cancelled()

    @staticmethod
    def _event_data(state: FileUploadState) -> Dict[str, object]:
        return {
            "file_id": state.file_id,
            "file_name": state.file_name,
            "session_id": state.session_id,
            "progress": state.progress_percent,
            "completed_chunks": len(state.completed_chunks),
            "total_chunks": state.total_chunks,
            "status": state.status.value
        }
