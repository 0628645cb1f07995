"""Utility functions for QuerySense operations.

This module provides helpers shared by the engine components: query text
normalization and hashing, identifier generation, timing, collaborator
timeouts and retry with exponential backoff.

Example:
    >>> with measure_time() as timer:
    ...     analysis = analyzer.analyze("SELECT * FROM cpu")
    >>> print(f"Analysis took {timer.duration_ms:.2f}ms")
"""

import asyncio
import hashlib
import re
import time
import uuid
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Generator, Optional, TypeVar, Union
import random

import structlog

from .exceptions import (
    CollaboratorTimeoutError,
    ErrorCodes,
    QuerySenseException,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")
_QUOTES = re.compile(r"['\"`]")


class QueryText:
    """Helpers for working with raw query strings."""

    @staticmethod
    def normalize(query: str) -> str:
        """Lowercase a query and collapse runs of whitespace.

        Example:
            >>> QueryText.normalize("SELECT  *\\n FROM cpu")
            'select * from cpu'
        """
        return _WHITESPACE.sub(" ", query.strip().lower())

    @staticmethod
    def normalize_for_similarity(query: str) -> str:
        """Normalize a query and strip quoting characters."""
        return _QUOTES.sub("", QueryText.normalize(query))

    @staticmethod
    def compute_hash(text: str, *, algorithm: str = "sha256") -> str:
        """Compute hex digest of a string.

        Example:
            >>> len(QueryText.compute_hash("hello world"))
            64
        """
        hasher = hashlib.new(algorithm)
        hasher.update(text.encode("utf-8"))
        return hasher.hexdigest()

    @classmethod
    def fingerprint(cls, query: str, *, length: int = 16) -> str:
        """Short stable hash of the normalized query text."""
        return cls.compute_hash(cls.normalize(query))[:length]


def generate_id(prefix: str) -> str:
    """Generate ``<prefix>_<epoch ms>_<9 random chars>`` identifiers."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp ``value`` into the closed interval [lower, upper]."""
    return max(lower, min(upper, value))


class TimerContext:
    """Context manager for measuring execution time."""

    def __init__(self) -> None:
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    @property
    def duration(self) -> Optional[float]:
        """Elapsed seconds, or None if the timer never started."""
        if self.start_time is None:
            return None
        end_time = self.end_time or time.perf_counter()
        return end_time - self.start_time

    @property
    def duration_ms(self) -> float:
        """Elapsed milliseconds (0.0 if the timer never started)."""
        duration = self.duration
        return duration * 1000 if duration is not None else 0.0

    def __enter__(self) -> "TimerContext":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()


@contextmanager
def measure_time() -> Generator[TimerContext, None, None]:
    """Context manager for measuring execution time.

    Yields:
        TimerContext instance for accessing duration
    """
    timer = TimerContext()
    with timer:
        yield timer


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    *,
    operation: str,
) -> T:
    """Await a collaborator call under a time budget.

    Args:
        awaitable: Collaborator coroutine to await
        timeout: Budget in seconds
        operation: Operation name used in the error context

    Returns:
        Result of the awaited call

    Raises:
        CollaboratorTimeoutError: If the budget is exceeded
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise CollaboratorTimeoutError(
            f"{operation} exceeded {timeout:.2f}s budget",
            code=ErrorCodes.COLLABORATOR_TIMEOUT,
            context={"operation": operation, "timeout": timeout},
            cause=e,
        ) from e


async def retry_with_backoff(
    operation: Callable[..., Union[Awaitable[T], T]],
    *args: Any,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    **kwargs: Any,
) -> T:
    """Retry operation with exponential backoff.

    Args:
        operation: Sync or async callable to retry
        *args: Positional arguments for operation
        max_retries: Maximum number of retry attempts
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        jitter: Whether to add random jitter
        **kwargs: Keyword arguments for operation

    Returns:
        Result of successful operation

    Raises:
        QuerySenseException: If all retries are exhausted
    """
    last_exception: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        try:
            result = operation(*args, **kwargs)
            if asyncio.iscoroutine(result):
                return await result
            return result
        except Exception as e:
            last_exception = e

            if attempt == max_retries:
                break

            delay = min(base_delay * (exponential_base ** attempt), max_delay)
            if jitter:
                delay *= (0.5 + random.random() * 0.5)

            logger.warning(
                "Operation failed, retrying",
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=delay,
                error=str(e),
            )

            await asyncio.sleep(delay)

    raise QuerySenseException(
        f"Operation failed after {max_retries} retries",
        code=ErrorCodes.MAX_RETRIES_EXCEEDED,
        context={
            "max_retries": max_retries,
            "operation": getattr(operation, "__name__", str(operation)),
        },
        cause=last_exception,
    )
