"""File helpers shared by the broker (name checks) and the client (range reads)."""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import aiofiles

from resumable_upload.core.exceptions import ValidationException
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

MAX_FILENAME_LENGTH = 255


@dataclass(frozen=True)
class FileInfo:
    """Local file metadata needed to start an upload."""
    path: Path
    name: str
    size: int


def get_file_size(file_path: Union[str, Path]) -> int:
    """Get file size in bytes."""
    return os.path.getsize(file_path)


def is_valid_filename(filename: str) -> bool:
    """Check that a filename can be embedded in an object key (no separators or control chars)."""
    if not filename or filename.startswith('.') or len(filename) > MAX_FILENAME_LENGTH:
        return False

    invalid_chars = ['/', '\\', ':', '*', '?', '"', '<', '>', '|']
    if any(char in filename for char in invalid_chars):
        return False
    return all(ord(char) >= 32 for char in filename)


def describe_file(file_path: Union[str, Path]) -> FileInfo:
    """Collect name and size for a local file, rejecting empty or unnamed files."""
    path = Path(file_path)
    if not path.is_file():
        raise ValidationException(f"Not a regular file: {path}", field="path")

    size = get_file_size(path)
    if size <= 0:
        raise ValidationException(f"Cannot upload empty file: {path}", field="path")
    if not is_valid_filename(path.name):
        raise ValidationException(f"Unsupported file name: {path.name}", field="path")

    return FileInfo(path=path, name=path.name, size=size)


async def read_file_range(file_path: Union[str, Path], start: int, length: int) -> bytes:
    """Read ``length`` bytes starting at ``start`` without blocking the event loop."""
    async with aiofiles.open(file_path, 'rb') as f:
        await f.seek(start)
        data = await f.read(length)

    if len(data) != length:
        logger.warning(f"Short read on {file_path}: expected {length} bytes at {start}, got {len(data)}")
    return data
