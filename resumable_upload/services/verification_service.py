"""Completion verifier: compares completed chunks to the session total."""
import logging
from dataclasses import dataclass
from typing import Optional

from resumable_upload.core.decorators import async_performance_monitor
from resumable_upload.services.ledger_service import SessionLedger
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    completed: bool
    progress: Optional[float] = None


class VerificationService:
    """Stamps session completion once every chunk row is flagged."""

    def __init__(self, ledger: SessionLedger):
        self.ledger = ledger

    @async_performance_monitor("verifier.verify")
    async def verify(self, session_id: str) -> VerificationResult:
        """
        Report whether a session is complete.

        Reads are not isolated from concurrent chunk completions; an incomplete answer
        may be stale and callers are free to verify again.

        Raises:
            SessionNotFoundError: no such session.
        """
        session = await self.ledger.get_session_record(session_id)
        completed_count = await self.ledger.count_completed_chunks(session_id)

        if completed_count == session.total_chunks:
            if await self.ledger.stamp_completed(session_id):
                logger.info(f"Upload session {session_id} completed ({session.total_chunks} chunks)")
            return VerificationResult(completed=True)

        progress = completed_count / session.total_chunks
        logger.info(f"Upload session {session_id} incomplete: {completed_count}/{session.total_chunks}")
        return VerificationResult(completed=False, progress=progress)
