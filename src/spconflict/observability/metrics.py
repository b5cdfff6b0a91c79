"""Metrics hook protocol and no-op default implementation.

spconflict reports counters and timings for conflict checks, polling and
HTTP requests.  The default :class:`NoopMetricsHook` discards everything.
Pass any object satisfying :class:`MetricsHook` to a detector, scheduler or
:class:`~spconflict.config.SharePointConfig` to route them elsewhere.

Emitted metric names:

* ``spconflict.checks_total``               -- counter
* ``spconflict.conflicts_detected_total``   -- counter
* ``spconflict.conflicts_resolved_total``   -- counter
* ``spconflict.fetch_failures_total``       -- counter
* ``spconflict.check_duration_ms``          -- timing
* ``spconflict.ticks_dropped_total``        -- counter
* ``spconflict.polling_active``             -- gauge (1 while ticks are delivered)
* ``spconflict.requests_total``             -- counter
* ``spconflict.retries_total``              -- counter
* ``spconflict.rate_limited_total``         -- counter
* ``spconflict.request_duration_ms``        -- timing
* ``spconflict.rate_limit_wait_ms``         -- timing
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    *tags* are string key/value pairs; backends map them onto their own
    labelling scheme.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Metrics backend that drops every data point.

    Lets call sites emit metrics unconditionally.
    """

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass
