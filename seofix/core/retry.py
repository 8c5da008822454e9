"""Async retry helper with exponential backoff, used around Analyzer calls."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import ValidationError as PydanticValidationError

from seofix.core.config import settings
from seofix.core.log import logger

__all__ = ("with_retry",)

T = TypeVar("T")

# Deterministic failures: retrying returns the same answer.
NEVER_RETRY: tuple[type[BaseException], ...] = (PydanticValidationError, TypeError, ValueError)


async def with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int | None = None,
    base_delay: float | None = None,
    max_delay: float = 30.0,
    retryable: tuple[type[BaseException], ...] = (Exception,),
    give_up_on: tuple[type[BaseException], ...] = NEVER_RETRY,
    label: str = "",
    **kwargs: Any,
) -> T:
    """
    Await ``fn(*args, **kwargs)``, retrying transient failures.

    Parameters
    ----------
    fn : async callable to invoke
    max_retries : extra attempts after the first (default ``ANALYZER_MAX_RETRIES``)
    base_delay : first backoff delay in seconds, doubled per attempt
        (default ``ANALYZER_RETRY_BASE_DELAY``)
    max_delay : ceiling for a single delay
    retryable : exception types that trigger a retry
    give_up_on : exception types re-raised immediately even if ``retryable``
    label : name used in log messages
    """
    retries = settings.ANALYZER_MAX_RETRIES if max_retries is None else max(max_retries, 0)
    delay_base = settings.ANALYZER_RETRY_BASE_DELAY if base_delay is None else base_delay
    tag = label or getattr(fn, "__name__", "call")

    attempt = 0
    while True:
        try:
            return await fn(*args, **kwargs)
        except give_up_on:
            raise
        except retryable as exc:
            if attempt >= retries:
                logger.error(f"{tag}: giving up after {attempt + 1} attempt(s) ({type(exc).__name__}: {exc})")
                raise
            delay = min(delay_base * (2**attempt), max_delay)
            attempt += 1
            logger.warning(
                f"{tag}: attempt {attempt}/{retries + 1} failed "
                f"({type(exc).__name__}: {exc}), retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
