"""Observer pattern used to publish upload lifecycle events to presentation layers."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

# Event names emitted by the upload orchestrator
UPLOAD_STARTED = "upload_started"
UPLOAD_PROGRESS = "upload_progress"
UPLOAD_COMPLETED = "upload_completed"
UPLOAD_FAILED = "upload_failed"
UPLOAD_PAUSED = "upload_paused"

ALL_UPLOAD_EVENTS = (UPLOAD_STARTED, UPLOAD_PROGRESS, UPLOAD_COMPLETED, UPLOAD_FAILED, UPLOAD_PAUSED)


class Observer(ABC):
    """Base class for observers."""

    @abstractmethod
    async def update(self, event_type: str, data: Dict[str, Any]):
        """Consume events emitted by Observable."""
        pass


class Observable:
    """Subject implementation that manages observer lifecycles."""

    def __init__(self):
        self._observers: Dict[str, List[Observer]] = {}

    def attach(self, event_type: str, observer: Observer):
        """Subscribe an observer to a given event type."""
        if event_type not in self._observers:
            self._observers[event_type] = []
        self._observers[event_type].append(observer)
        logger.debug(f"Attached observer for event: {event_type}")

    def attach_all(self, observer: Observer):
        """Subscribe an observer to every upload event."""
        for event_type in ALL_UPLOAD_EVENTS:
            self.attach(event_type, observer)

    async def notify(self, event_type: str, data: Dict[str, Any]):
        """Notify observers; an observer failure never reaches the publisher."""
        observers = self._observers.get(event_type)
        if not observers:
            return

        results = await asyncio.gather(
            *(observer.update(event_type, data) for observer in observers),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Observer failed for {event_type}: {result}")


class UploadProgressObserver(Observer):
    """Observer that logs upload lifecycle events."""

    async def update(self, event_type: str, data: Dict[str, Any]):
        file_name = data.get("file_name", "unknown")

        if event_type == UPLOAD_PROGRESS:
            logger.info(
                f"Upload progress [{data.get('session_id')}]: {file_name} - "
                f"{data.get('progress', 0)}% ({data.get('completed_chunks', 0)}/{data.get('total_chunks', 0)} chunks)"
            )
        elif event_type == UPLOAD_FAILED:
            logger.error(f"Upload failed: {file_name} - {data.get('error')}")
        else:
            logger.info(f"Upload event [{event_type}]: {file_name}")
