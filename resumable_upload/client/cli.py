"""Command-line uploader: ``resumable-upload FILE [FILE ...]``."""
import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from resumable_upload.client.api_client import UploadApiClient
from resumable_upload.client.batch import BatchController
from resumable_upload.client.orchestrator import UploadOrchestrator
from resumable_upload.client.state import UploadStatus
from resumable_upload.config import settings
from resumable_upload.core.exceptions import UploadException
from resumable_upload.core.patterns import (
    UPLOAD_COMPLETED,
    UPLOAD_FAILED,
    UPLOAD_PAUSED,
    Observer,
    UploadProgressObserver,
)
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


def parse_size(size_str: str) -> int:
    """Parse size string (e.g., '5MB', '512KB') to bytes."""
    units = {'KB': 1024, 'MB': 1024**2, 'GB': 1024**3, 'B': 1}
    size_str = size_str.strip().upper()
    for unit, multiplier in units.items():
        if size_str.endswith(unit):
            try:
                return int(float(size_str[:-len(unit)]) * multiplier)
            except ValueError:
                raise argparse.ArgumentTypeError(f"Invalid size: {size_str}")
    try:
        return int(size_str)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid size: {size_str}")


class TqdmProgressObserver(Observer):
    """One progress bar per file, driven by orchestrator events."""

    def __init__(self):
        self._bars: Dict[str, tqdm] = {}

    def _bar(self, data: Dict[str, Any]) -> tqdm:
        file_id = data["file_id"]
        if file_id not in self._bars:
            self._bars[file_id] = tqdm(
                total=100,
                unit="%",
                desc=data.get("file_name", file_id),
                position=len(self._bars),
                leave=True
            )
        return self._bars[file_id]

    async def update(self, event_type: str, data: Dict[str, Any]):
        bar = self._bar(data)
        bar.n = data.get("progress", 0)
        if event_type == UPLOAD_COMPLETED:
            bar.set_postfix_str("done")
        elif event_type == UPLOAD_FAILED:
            bar.set_postfix_str("error")
        elif event_type == UPLOAD_PAUSED:
            bar.set_postfix_str("paused")
        bar.refresh()

    def close(self) -> None:
        for bar in self._bars.values():
            bar.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resumable-upload",
        description="Upload files in resumable chunks through the upload broker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  resumable-upload video.mp4 backup.tar
  resumable-upload video.mp4 --resume 3f9c2a... --api-url http://localhost:3000
        """
    )
    parser.add_argument("paths", nargs="+", help="Files to upload")
    parser.add_argument("--api-url", default=settings.upload_api_url, help="Upload broker base URL")
    parser.add_argument("--chunk-size", type=parse_size, default=settings.upload_chunk_size,
                        help="Chunk size for new sessions (e.g. '5MB')")
    parser.add_argument("--parallel-chunks", type=int, default=settings.client_parallel_chunks,
                        help="Concurrent chunk pipelines per file")
    parser.add_argument("--parallel-files", type=int, default=settings.client_parallel_files,
                        help="Files uploaded concurrently")
    parser.add_argument("--resume", metavar="SESSION_ID", help="Continue an earlier session (single file only)")
    parser.add_argument("--no-progress", action="store_true", help="Log progress lines instead of drawing bars")
    return parser


async def run_uploads(args: argparse.Namespace) -> int:
    """Upload every path; returns the process exit code."""
    client_config = settings.get_client_config()
    progress = None if args.no_progress else TqdmProgressObserver()

    async with UploadApiClient(args.api_url, request_timeout=client_config.request_timeout) as api:
        orchestrator = UploadOrchestrator(
            api,
            chunk_size=args.chunk_size,
            parallel_chunks=args.parallel_chunks,
            max_retries=client_config.max_retries,
            initial_retry_delay=client_config.initial_retry_delay,
            verify_attempts=client_config.verify_attempts,
            max_files=client_config.max_files
        )
        orchestrator.attach_all(progress or UploadProgressObserver())

        file_ids: List[str] = [orchestrator.add_file(path) for path in args.paths]
        if args.resume:
            await orchestrator.restore(file_ids[0], args.resume)

        controller = BatchController(orchestrator, parallel_files=args.parallel_files)
        try:
            await controller.upload_all()
        finally:
            if progress is not None:
                progress.close()

        summary = controller.summary()
        for snapshot in orchestrator.snapshots():
            if snapshot.status != UploadStatus.COMPLETED and snapshot.session_id:
                print(f"{snapshot.file_name}: {snapshot.status.value}, "
                      f"resume with --resume {snapshot.session_id}")

    print(f"{summary.completed_files}/{summary.total_files} file(s) uploaded "
          f"({summary.uploaded_bytes:,}/{summary.total_bytes:,} bytes)")
    return 0 if summary.completed_files == summary.total_files else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main function"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.resume and len(args.paths) != 1:
        parser.error("--resume takes exactly one file")

    try:
        return asyncio.run(run_uploads(args))
    except UploadException as e:
        logger.error(f"✗ {e.message}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
