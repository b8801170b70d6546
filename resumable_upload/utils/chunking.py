"""Splitting a file size into fixed-size chunk byte ranges."""
from dataclasses import dataclass
from typing import List

from resumable_upload.core.exceptions import ValidationException


@dataclass(frozen=True)
class ChunkRange:
    """Half-open byte range ``[start, end)`` of one chunk."""
    index: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


def count_chunks(file_size: int, chunk_size: int) -> int:
    """Return ``ceil(file_size / chunk_size)``."""
    if file_size <= 0:
        raise ValidationException(f"File size must be positive, got {file_size}", field="file_size")
    if chunk_size <= 0:
        raise ValidationException(f"Chunk size must be positive, got {chunk_size}", field="chunk_size")
    return -(-file_size // chunk_size)


def split_into_chunks(file_size: int, chunk_size: int) -> List[ChunkRange]:
    """
    Partition ``[0, file_size)`` into ordered, gapless, non-overlapping chunks.

    Every chunk is ``chunk_size`` bytes long except the last, which may be shorter.

    Raises:
        ValidationException: if either size is zero or negative.
    """
    total = count_chunks(file_size, chunk_size)
    return [
        ChunkRange(index=i, start=i * chunk_size, end=min((i + 1) * chunk_size, file_size))
        for i in range(total)
    ]
