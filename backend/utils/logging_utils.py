"""
Logging Utilities for Consistent Structured Logging

Helpers that attach report/room context to log records and time long-running
operations such as document exports.
"""

import time
import logging
from typing import Dict, Any, Optional, Callable, TypeVar
from contextlib import contextmanager
from functools import wraps

logger = logging.getLogger(__name__)

T = TypeVar('T')


@contextmanager
def log_operation(operation_name: str, context: Dict[str, Any], logger: Optional[logging.Logger] = None):
    """
    Context manager for logging operation start, end, and duration with context.

    Usage:
        with log_operation("report_export", {"report_id": "r1", "kind": "pdf"}):
            ...
    """
    logger = logger or logging.getLogger(__name__)
    start_time = time.time()

    logger.info(f"Starting {operation_name}", extra={
        'operation': operation_name,
        'context': context,
        'status': 'started'
    })

    try:
        yield
        duration = time.time() - start_time
        logger.info(f"Completed {operation_name} in {duration:.2f}s", extra={
            'operation': operation_name,
            'context': context,
            'status': 'completed',
            'duration_seconds': duration
        })
    except Exception as e:
        duration = time.time() - start_time
        logger.error(f"Failed {operation_name} after {duration:.2f}s: {str(e)}", extra={
            'operation': operation_name,
            'context': context,
            'status': 'failed',
            'duration_seconds': duration,
            'error_type': type(e).__name__,
            'error_message': str(e)
        })
        raise


def timed_operation(operation_name: Optional[str] = None):
    """
    Decorator to time function execution and log results.

    Usage:
        @timed_operation("save_report")
        def save_report(self, report):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            name = operation_name or func.__name__
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.debug(f"[TIMING] {name} completed in {duration:.3f}s")
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(f"[TIMING] {name} failed after {duration:.3f}s: {str(e)}")
                raise

        return wrapper
    return decorator
