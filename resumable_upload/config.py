"""
Application settings and protocol constants.

`settings` is the process-wide Settings instance; the constants below are the
protocol defaults the client and broker agree on.
"""
from resumable_upload.core.config import config_manager

settings = config_manager.settings

# Chunking
CHUNK_SIZE = settings.upload_chunk_size

# Client dispatch
MAX_PARALLEL_CHUNKS = settings.client_parallel_chunks
MAX_PARALLEL_FILES = settings.client_parallel_files
MAX_FILES = settings.client_max_files
MAX_RETRIES = settings.client_max_retries
INITIAL_RETRY_DELAY = settings.client_initial_retry_delay
