"""Decorator implementations for error translation and latency monitoring."""
import logging
import time
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar

from resumable_upload.config import settings
from resumable_upload.core.exceptions import UploadException
from resumable_upload.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)

AsyncF = TypeVar('AsyncF', bound=Callable[..., Awaitable[Any]])


def async_exception_handler(
    exception_type: Type[UploadException],
    default_message: str = "Async operation failed",
    log_error: bool = True
):
    """
    Translate unexpected errors raised by a coroutine into one application exception kind.

    Application exceptions pass through untouched; anything else is logged and re-raised
    as ``exception_type(default_message)`` chained to the original error.

    Args:
        exception_type: UploadException subclass accepting a message as first argument.
        default_message: Message prefix for translated errors.
        log_error: Whether to log the error automatically.
    """

    def decorator(func: AsyncF) -> AsyncF:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except UploadException:
                raise
            except Exception as e:
                if log_error:
                    logger.error(
                        f"Async function {func.__name__} failed: {str(e)}",
                        exc_info=True
                    )
                raise exception_type(f"{default_message}: {e}", original_error=e) from e

        return wrapper  # type: ignore

    return decorator


def async_performance_monitor(
    operation_name: Optional[str] = None,
    log_slow_operations: bool = True,
    slow_threshold: Optional[float] = None
):
    """Measure coroutine latency and flag slow calls."""

    def decorator(func: AsyncF) -> AsyncF:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            op_name = operation_name or f"{func.__module__}.{func.__name__}"
            threshold = slow_threshold if slow_threshold is not None else settings.slow_operation_threshold
            start_time = time.perf_counter()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                execution_time = time.perf_counter() - start_time
                logger.debug(f"Async operation failed: {op_name} in {execution_time:.3f}s ({type(e).__name__})")
                raise

            execution_time = time.perf_counter() - start_time
            log_info = {
                "operation": op_name,
                "execution_time": round(execution_time, 4),
                "status": "success"
            }
            if log_slow_operations and execution_time > threshold:
                logger.warning(f"Slow async operation detected: {log_info}")
            else:
                logger.debug(f"Async operation completed: {log_info}")

            return result

        return wrapper  # type: ignore

    return decorator
