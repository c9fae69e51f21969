import asyncio
import logging
import ssl
from functools import wraps
from typing import Callable, Optional, Tuple, Type

import httpx

logger = logging.getLogger("Utils")

# Network errors, timeouts and transient HTTP failures
RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.HTTPStatusError,
    httpx.NetworkError,         # connect/read/write errors
    httpx.RemoteProtocolError,  # server disconnected, malformed responses
    ConnectionResetError,
    BrokenPipeError,
    ssl.SSLError,
)

RATE_LIMIT_STATUS = 429


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Notion and Google both send Retry-After (seconds) with 429s."""
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value else None
    except ValueError:
        return None


def retry_on_error(
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = RETRYABLE_EXCEPTIONS
):
    """
    Decorator to retry async API calls on transient failures.

    4xx responses other than 429 are raised immediately. 429s wait for
    Retry-After when the server sends it, otherwise back off 5x longer.
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    wait_time = backoff_factor ** attempt

                    if isinstance(e, httpx.HTTPStatusError):
                        status = e.response.status_code
                        if status < 500 and status != RATE_LIMIT_STATUS:
                            raise
                        if status == RATE_LIMIT_STATUS:
                            wait_time = _retry_after_seconds(e.response) or wait_time * 5

                    if attempt == max_retries - 1:
                        break

                    logger.warning(f"Transient error in {func.__name__}: {e}. Retrying in {wait_time}s...")
                    await asyncio.sleep(wait_time)

            raise last_exception
        return wrapper
    return decorator
