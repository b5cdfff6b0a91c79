"""Async HTTP transport for the SharePoint REST API.

Each request goes through the following lifecycle:

1. Acquire a token-bucket slot (wait if needed).
2. Send the HTTP request with auth and OData headers.
3. On ``2xx`` -- return the parsed JSON response.
4. On ``429`` / ``503`` -- honour ``Retry-After``, sleep, and retry.
5. On other ``5xx`` / network error -- exponential backoff and retry.
6. On non-retryable ``4xx`` -- raise the matching typed error immediately.
7. On max attempts exceeded -- raise :class:`FetchFailedError`.
8. On any other httpx error -- raise :class:`FetchFailedError` without retrying.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx

from spconflict.config import SharePointConfig
from spconflict.errors import (
    FetchFailedError,
    PermissionDeniedError,
    RecordNotFoundError,
)
from spconflict.observability import NoopMetricsHook, get_logger

from .rate_limit import AsyncTokenBucket
from .retries import _RETRYABLE_STATUSES, compute_backoff, should_retry

log = get_logger("spconflict.transport")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract the ``Retry-After`` header value as a float, or ``None``."""
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


def _error_message(response: httpx.Response) -> str:
    """Pull the human-readable message out of a SharePoint error body.

    Verbose responses nest it as ``error.message.value``; the light OData
    modes use ``odata.error.message.value``.
    """
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if not isinstance(body, dict):
        return response.text[:500]
    error = body.get("error") or body.get("odata.error") or {}
    message = error.get("message", "") if isinstance(error, dict) else ""
    if isinstance(message, dict):
        message = message.get("value", "")
    return str(message) or response.text[:500]


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    """Raise the typed error for a non-retryable 4xx response."""
    status = response.status_code
    detail = _error_message(response)
    ctx: dict[str, Any] = {"status_code": status, "operation": f"{method} {path}"}

    if status in (401, 403):
        raise PermissionDeniedError(
            message=f"Permission denied on {method} {path}: {detail}",
            context=ctx,
        )
    if status == 404:
        raise RecordNotFoundError(
            message=f"Resource not found on {method} {path}: {detail}",
            context=ctx,
        )
    raise FetchFailedError(
        message=f"Client error {status} on {method} {path}: {detail}",
        context=ctx,
    )


# ---------------------------------------------------------------------------
# Async transport
# ---------------------------------------------------------------------------

class AsyncSharePointTransport:
    """Asynchronous HTTP transport with auth, retry, and rate limiting.

    Parameters
    ----------
    config:
        A :class:`SharePointConfig` controlling all transport behaviour.
    """

    def __init__(self, config: SharePointConfig) -> None:
        self._config = config
        self._bucket = AsyncTokenBucket(rate_rps=config.rate_limit_rps, burst=10)
        self._metrics = config.metrics if config.metrics is not None else NoopMetricsHook()

        headers = {"Accept": f"application/json;odata={config.odata_mode}"}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._client = httpx.AsyncClient(
            base_url=config.site_url,
            headers=headers,
            timeout=httpx.Timeout(config.timeout_seconds),
            proxy=config.http_proxy,
        )

    @property
    def config(self) -> SharePointConfig:
        return self._config

    # -- public API --------------------------------------------------------

    async def request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Execute an HTTP request against the SharePoint REST API.

        Parameters
        ----------
        method:
            HTTP method.
        path:
            Path relative to ``site_url``, e.g. ``/_api/web/lists``.
        **kwargs:
            Forwarded to :meth:`httpx.AsyncClient.request`.

        Returns
        -------
        dict
            Parsed JSON response body (``{}`` for empty responses).

        Raises
        ------
        PermissionDeniedError
            On 401 and 403 responses.
        RecordNotFoundError
            On 404 responses.
        FetchFailedError
            On other 4xx responses, unparseable bodies, exhausted retries,
            network failures and any other httpx transport error.
        """
        max_attempts = self._config.retry_max_attempts
        last_exception: Exception | None = None
        last_status: int | None = None

        for attempt in range(max_attempts):
            wait = await self._bucket.acquire()
            if wait > 0:
                self._metrics.timing(
                    "spconflict.rate_limit_wait_ms",
                    wait * 1000,
                    tags={"method": method},
                )

            t0 = time.monotonic()
            try:
                response = await self._client.request(method, path, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                last_exception = exc
                last_status = None
                delay = self._handle_network_exception(method, path, exc, attempt)
                await asyncio.sleep(delay)
                continue
            except httpx.HTTPError as exc:
                raise FetchFailedError(
                    message=f"Transport error on {method} {path}: {exc}",
                    context={"method": method, "path": path, "attempt": attempt + 1},
                    cause=exc,
                ) from exc
            elapsed_ms = (time.monotonic() - t0) * 1000

            last_status = response.status_code
            last_exception = None
            tags = {"method": method, "status": str(response.status_code)}
            self._metrics.increment("spconflict.requests_total", tags=tags)
            self._metrics.timing("spconflict.request_duration_ms", elapsed_ms, tags=tags)

            if 200 <= response.status_code < 300:
                if response.status_code == 204 or not response.content:
                    return {}
                try:
                    result = response.json()
                except ValueError as exc:
                    raise FetchFailedError(
                        message=f"Unparseable response body on {method} {path}",
                        context={"status_code": response.status_code},
                        cause=exc,
                    ) from exc
                if not isinstance(result, dict):
                    raise FetchFailedError(
                        message=f"Expected a JSON object on {method} {path}",
                        context={"status_code": response.status_code},
                    )
                return result

            if response.status_code not in _RETRYABLE_STATUSES:
                _raise_for_status(response, method, path)

            if not should_retry(response.status_code, None, attempt, max_attempts):
                break

            retry_after = _parse_retry_after(response)
            reason = "server_error"
            if response.status_code == 429 or retry_after is not None:
                reason = "throttled"
                self._metrics.increment("spconflict.rate_limited_total", tags={"method": method})
                log.warning(
                    "Throttled by SharePoint",
                    extra={
                        "extra_fields": {
                            "op": "request",
                            "method": method,
                            "path": path,
                            "status_code": response.status_code,
                            "retry_after": retry_after,
                            "attempt": attempt + 1,
                        }
                    },
                )

            delay = compute_backoff(
                attempt,
                base=self._config.retry_base_delay,
                maximum=self._config.retry_max_delay,
                jitter=self._config.retry_jitter,
                retry_after=retry_after,
            )
            self._metrics.increment(
                "spconflict.retries_total", tags={"method": method, "reason": reason},
            )
            await asyncio.sleep(delay)

        ctx: dict[str, Any] = {"attempts": max_attempts, "last_status_code": last_status}
        if last_exception is not None:
            raise FetchFailedError(
                message=(
                    f"All {max_attempts} attempts exhausted for {method} {path} "
                    f"(last error: {last_exception})"
                ),
                context=ctx,
                cause=last_exception,
            )
        raise FetchFailedError(
            message=(
                f"All {max_attempts} attempts exhausted for {method} {path} "
                f"(last status: {last_status})"
            ),
            context=ctx,
        )

    async def close(self) -> None:
        """Close the underlying async HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncSharePointTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- internals ---------------------------------------------------------

    def _handle_network_exception(
        self,
        method: str,
        path: str,
        exc: Exception,
        attempt: int,
    ) -> float:
        """Return the backoff delay for a retryable network error.

        Raises :class:`FetchFailedError` once retries are exhausted.
        """
        max_attempts = self._config.retry_max_attempts
        self._metrics.increment(
            "spconflict.requests_total", tags={"method": method, "status": "error"},
        )
        log.warning(
            "Request network error",
            extra={
                "extra_fields": {
                    "op": "request",
                    "method": method,
                    "path": path,
                    "attempt": attempt + 1,
                    "error": str(exc),
                }
            },
        )
        if should_retry(None, exc, attempt, max_attempts):
            self._metrics.increment(
                "spconflict.retries_total", tags={"method": method, "reason": "network_error"},
            )
            return compute_backoff(
                attempt,
                base=self._config.retry_base_delay,
                maximum=self._config.retry_max_delay,
                jitter=self._config.retry_jitter,
            )
        raise FetchFailedError(
            message=f"Network error on {method} {path}: {exc}",
            context={"path": path, "attempt": attempt + 1},
            cause=exc,
        ) from exc
