"""Transport configuration for the SharePoint stamp fetcher.

:class:`SharePointConfig` collects every setting of the HTTP side of
spconflict: the site address, credentials, retry and pacing behaviour,
timeouts and the metrics hook.  Detection behaviour lives in
:class:`~spconflict.options.ConflictDetectionOptions` instead.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse


@dataclass
class SharePointConfig:
    """Complete configuration for :class:`~spconflict.sharepoint.AsyncSharePointTransport`.

    Parameters
    ----------
    site_url:
        Absolute URL of the SharePoint site, e.g.
        ``https://contoso.sharepoint.com/sites/hr``.  **Required.**
    token:
        OAuth bearer token sent with every request.  Never logged.
    odata_mode:
        Value of the ``odata=`` parameter in the ``Accept`` header.

        * ``"verbose"`` -- the version is read from ``d.__metadata.etag``.
        * ``"minimalmetadata"`` -- the version is read from ``odata.etag``.
    retry_max_attempts:
        Maximum number of attempts per request for retryable errors.
    retry_base_delay:
        Base delay (seconds) for exponential backoff.
    retry_max_delay:
        Upper cap (seconds) on computed backoff delay.
    retry_jitter:
        Scale each backoff randomly to between 50 % and 100 %.
    rate_limit_rps:
        Target requests per second for client-side pacing (token bucket).
    timeout_seconds:
        HTTP request timeout in seconds.
    http_proxy:
        Optional HTTP/HTTPS proxy URL.
    metrics:
        Optional :class:`~spconflict.observability.MetricsHook`.
    """

    site_url: str = ""

    token: str = ""

    odata_mode: str = "verbose"

    # ── Retry & rate ────────────────────────────────────────────────────
    retry_max_attempts: int = 3

    retry_base_delay: float = 1.0

    retry_max_delay: float = 30.0

    retry_jitter: bool = True

    rate_limit_rps: float = 5.0

    # ── HTTP ────────────────────────────────────────────────────────────
    timeout_seconds: float = 15.0

    http_proxy: str | None = None

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        parsed = urlparse(self.site_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError(f"site_url must be an absolute http(s) URL, got {self.site_url!r}")
        if parsed.scheme == "http" and parsed.hostname not in (
            "localhost",
            "127.0.0.1",
            "::1",
        ):
            raise ValueError(
                f"site_url uses insecure HTTP for non-local host '{parsed.hostname}'. "
                "Use HTTPS to protect your token, or target localhost for testing."
            )
        self.site_url = self.site_url.rstrip("/")

        if self.odata_mode not in ("verbose", "minimalmetadata"):
            raise ValueError(
                f"odata_mode must be 'verbose' or 'minimalmetadata', got {self.odata_mode!r}"
            )
        if self.retry_max_attempts < 1:
            raise ValueError(f"retry_max_attempts must be >= 1, got {self.retry_max_attempts}")
        if self.retry_base_delay < 0:
            raise ValueError(f"retry_base_delay must be >= 0, got {self.retry_base_delay}")
        if self.retry_max_delay < 0:
            raise ValueError(f"retry_max_delay must be >= 0, got {self.retry_max_delay}")
        if self.rate_limit_rps <= 0:
            raise ValueError(f"rate_limit_rps must be > 0, got {self.rate_limit_rps}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")

    def __repr__(self) -> str:
        """Mask the token to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "token":
                masked = f"...{val[-4:]}" if len(val) >= 4 else "****"
                parts.append(f"token='{masked}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"SharePointConfig({', '.join(parts)})"
