"""Retry decision logic and exponential backoff computation.

Two pure functions used by the transport:

* :func:`should_retry` -- decide whether a failed request is retryable.
* :func:`compute_backoff` -- compute the delay before the next attempt.

SharePoint throttles with ``429`` and, under load, ``503``; both carry a
``Retry-After`` header that takes precedence over the computed backoff.
"""

from __future__ import annotations

import random

import httpx

# HTTP status codes that are safe to retry.
_RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

# Network-level exceptions that warrant a retry.
_RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
)


def should_retry(
    status_code: int | None,
    exception: Exception | None,
    attempt: int,
    max_attempts: int,
) -> bool:
    """Decide whether a request should be retried.

    Parameters
    ----------
    status_code:
        HTTP status of the response, or ``None`` if no response arrived.
    exception:
        The exception raised by the request, or ``None``.
    attempt:
        The current attempt number (0-indexed).
    max_attempts:
        Total attempts allowed, including the first.
    """
    if attempt + 1 >= max_attempts:
        return False

    if exception is not None:
        return isinstance(exception, _RETRYABLE_EXCEPTIONS)

    if status_code is not None:
        return status_code in _RETRYABLE_STATUSES

    return False


def compute_backoff(
    attempt: int,
    base: float = 1.0,
    maximum: float = 30.0,
    jitter: bool = True,
    retry_after: float | None = None,
) -> float:
    """Compute the delay in seconds before the next attempt.

    A server-provided *retry_after* is used as is.  Otherwise the delay is
    ``base * 2**attempt`` capped at *maximum*.  With *jitter* the delay is
    scaled to a random point between 50 % and 100 % of its value.
    """
    if retry_after is not None:
        delay = retry_after
    else:
        delay = min(base * (2 ** attempt), maximum)

    if jitter:
        delay *= 0.5 + random.random() * 0.5

    return delay
