"""Resumable chunked uploads: session broker service and upload client."""

__version__ = "1.0.0"
