"""spconflict.sharepoint -- SharePoint REST transport and stamp fetcher.

This sub-package provides:

* :mod:`.rate_limit` -- Async token bucket rate limiter.
* :mod:`.retries` -- Retry decision logic and exponential backoff.
* :mod:`.transport` -- HTTP transport with auth, retries, and rate limiting.
* :mod:`.items` -- List item wrapper and :class:`SharePointStampFetcher`.
"""

from __future__ import annotations

from .items import AsyncItemAPI, SharePointStampFetcher, parse_stamp
from .rate_limit import AsyncTokenBucket
from .retries import compute_backoff, should_retry
from .transport import AsyncSharePointTransport

__all__ = [
    "AsyncItemAPI",
    "AsyncSharePointTransport",
    "AsyncTokenBucket",
    "SharePointStampFetcher",
    "compute_backoff",
    "parse_stamp",
    "should_retry",
]
