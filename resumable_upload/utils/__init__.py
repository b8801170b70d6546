"""Utility modules - chunk splitting, file helpers and logging."""
from resumable_upload.utils.chunking import ChunkRange, count_chunks, split_into_chunks
from resumable_upload.utils.file_utils import (
    FileInfo,
    describe_file,
    get_file_size,
    is_valid_filename,
    read_file_range,
)
from resumable_upload.utils.logger import get_logger, setup_logger

__all__ = [
    "ChunkRange",
    "count_chunks",
    "split_into_chunks",
    "FileInfo",
    "describe_file",
    "get_file_size",
    "is_valid_filename",
    "read_file_range",
    "setup_logger",
    "get_logger",
]
