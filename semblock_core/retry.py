"""
Retry helpers for backend calls.

Backends are not retried in general: a failed analysis surfaces to the
caller. The exception is a local server that loads models on first use,
where one delayed retry is enough for the model to become resident.

Usage:
    from semblock_core.retry import execute_with_retry

    result = await execute_with_retry(
        fetch, text, model,
        max_attempts=2,
        delay=5.0,
        should_retry=is_model_loading_error,
    )
"""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MODEL_LOADING_MARKERS = ("model_not_found", "no models loaded")


def is_model_loading_error(error: Exception) -> bool:
    """True when the backend reports that the requested model is not loaded yet"""
    text = str(error).lower()
    body = getattr(error, "body", None)
    if isinstance(body, str):
        text += " " + body.lower()
    return any(marker in text for marker in MODEL_LOADING_MARKERS)


async def execute_with_retry(
    func: Callable,
    *args,
    max_attempts: int = 2,
    delay: float = 1.0,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    **kwargs
):
    """
    Execute an async function, retrying with a fixed delay.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        max_attempts: Total number of attempts, including the first one
        delay: Seconds to wait before each retry
        should_retry: Predicate deciding whether an error is retryable;
            non-retryable errors propagate immediately
        **kwargs: Keyword arguments for func

    Returns:
        Result of func

    Raises:
        The error of the last attempt, unchanged
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if should_retry is not None and not should_retry(e):
                raise
            if attempt >= max_attempts:
                logger.error(f"Failed after {max_attempts} attempts: {e}")
                raise
            logger.info(
                f"Attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)
