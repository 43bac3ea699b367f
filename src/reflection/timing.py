"""Timing utilities for structured logging.

Uses time.perf_counter() for sub-millisecond precision.
"""

import logging
import time
from contextlib import contextmanager
from typing import Optional


@contextmanager
def timed_operation(
    operation: str,
    logger: logging.Logger,
    level: int = logging.DEBUG,
    extra: Optional[dict] = None,
    histogram=None,
):
    """Context manager for timing a search phase with structured logging.

    Logs ``{operation}_completed`` with ``duration_ms`` on success and
    ``{operation}_failed`` with the error on failure, then re-raises.
    When a prometheus Histogram is given, the duration is observed on it
    in both cases.

    Args:
        operation: Operation name used as the log message prefix
        logger: Logger instance to use for logging
        level: Log level for success case (default: DEBUG)
        extra: Optional dict of extra context to include in log
        histogram: Optional prometheus Histogram to observe seconds on

    Example:
        >>> logger = logging.getLogger("reflection.engine")
        >>> with timed_operation("embed_query", logger, extra={"request_id": "abc"}):
        ...     pass
    """
    start = time.perf_counter()
    _extra = extra or {}

    try:
        yield

        duration = time.perf_counter() - start
        if histogram is not None:
            histogram.observe(duration)
        logger.log(
            level,
            f"{operation}_completed",
            extra={
                **_extra,
                "duration_ms": round(duration * 1000, 2),
                "status": "success",
            },
        )

    except Exception as e:
        duration = time.perf_counter() - start
        if histogram is not None:
            histogram.observe(duration)
        logger.warning(
            f"{operation}_failed",
            extra={
                **_extra,
                "duration_ms": round(duration * 1000, 2),
                "status": "failed",
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        raise
