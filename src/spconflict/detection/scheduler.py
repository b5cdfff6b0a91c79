"""Cooperative polling timer for background conflict checks.

:class:`PollingScheduler` runs one :mod:`asyncio` timer task that invokes an
async callback every *interval*.  It enforces three rules:

1. The interval is clamped into a ``[min_interval_ms, max_interval_ms]``
   band, 5 s to 5 min by default.
2. At most one callback is in flight.  A tick that arrives while the
   previous callback is still running is dropped, never queued.
3. Resuming after a pause waits a full interval before the next tick.

The scheduler never raises out of a tick: callback exceptions are logged
and the next tick runs as usual.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from spconflict.observability import NoopMetricsHook, get_logger
from spconflict.options import MAX_POLLING_INTERVAL_MS, MIN_POLLING_INTERVAL_MS

log = get_logger("spconflict.scheduler")

TickCallback = Callable[[], Awaitable[Any]]


def clamp_interval(
    interval_ms: float,
    minimum: int = MIN_POLLING_INTERVAL_MS,
    maximum: int = MAX_POLLING_INTERVAL_MS,
) -> int:
    """Clamp *interval_ms* into ``[minimum, maximum]``."""
    return int(min(max(interval_ms, minimum), maximum))


class PollingScheduler:
    """Repeating asyncio timer with pause/resume and a busy guard.

    Parameters
    ----------
    min_interval_ms:
        Lower bound applied to every requested interval.
    max_interval_ms:
        Upper bound applied to every requested interval.
    metrics:
        Optional :class:`~spconflict.observability.MetricsHook`.
    """

    def __init__(
        self,
        *,
        min_interval_ms: int = MIN_POLLING_INTERVAL_MS,
        max_interval_ms: int = MAX_POLLING_INTERVAL_MS,
        metrics: Any | None = None,
    ) -> None:
        if min_interval_ms <= 0:
            raise ValueError(f"min_interval_ms must be > 0, got {min_interval_ms}")
        if max_interval_ms < min_interval_ms:
            raise ValueError(
                f"max_interval_ms ({max_interval_ms}) must be >= "
                f"min_interval_ms ({min_interval_ms})"
            )
        self.min_interval_ms = min_interval_ms
        self.max_interval_ms = max_interval_ms
        self._metrics = metrics if metrics is not None else NoopMetricsHook()

        self._interval_ms: int | None = None
        self._on_tick: TickCallback | None = None
        self._timer: asyncio.Task[None] | None = None
        self._inflight: asyncio.Future[Any] | None = None
        self._started = False
        self._paused = False

    # -- state -------------------------------------------------------------

    @property
    def interval_ms(self) -> int | None:
        return self._interval_ms

    @property
    def is_started(self) -> bool:
        """``True`` between :meth:`start` and :meth:`stop`, paused or not."""
        return self._started

    @property
    def is_paused(self) -> bool:
        return self._started and self._paused

    @property
    def is_active(self) -> bool:
        """``True`` if ticks are currently being delivered."""
        return self._started and not self._paused

    @property
    def is_busy(self) -> bool:
        """``True`` while a tick callback has not finished."""
        return self._inflight is not None and not self._inflight.done()

    def clamp(self, interval_ms: float) -> int:
        return clamp_interval(interval_ms, self.min_interval_ms, self.max_interval_ms)

    # -- lifecycle ---------------------------------------------------------

    def start(self, interval_ms: float, on_tick: TickCallback) -> bool:
        """Start ticking every *interval_ms* (clamped).

        Must be called with a running event loop.  Returns ``False`` if the
        scheduler was already started.
        """
        if self._started:
            return False
        loop = asyncio.get_running_loop()
        self._interval_ms = self.clamp(interval_ms)
        self._on_tick = on_tick
        self._started = True
        self._paused = False
        self._timer = loop.create_task(self._run(), name="spconflict-polling")
        self._report_active()
        log.debug(
            "Polling started",
            extra={"extra_fields": {"op": "start", "interval_ms": self._interval_ms}},
        )
        return True

    def pause(self) -> None:
        """Stop delivering ticks; the interval and callback are kept.

        A callback already in flight is left to finish.
        """
        if not self._started or self._paused:
            return
        self._paused = True
        self._cancel_timer()
        self._report_active()

    def resume(self) -> None:
        """Resume ticking.  The first tick comes one full interval later."""
        if not self._started or not self._paused:
            return
        self._paused = False
        self._timer = asyncio.get_running_loop().create_task(
            self._run(), name="spconflict-polling",
        )
        self._report_active()

    def update_interval(self, interval_ms: float) -> int:
        """Change the interval (clamped) and return the effective value.

        A running timer restarts so the new interval applies from now.
        """
        self._interval_ms = self.clamp(interval_ms)
        if self.is_active:
            self._cancel_timer()
            self._timer = asyncio.get_running_loop().create_task(
                self._run(), name="spconflict-polling",
            )
        return self._interval_ms

    def stop(self) -> None:
        """Stop the timer.  Safe to call any number of times."""
        if not self._started:
            return
        self._cancel_timer()
        self._started = False
        self._paused = False
        self._on_tick = None
        self._report_active()
        log.debug("Polling stopped", extra={"extra_fields": {"op": "stop"}})

    # -- ticks -------------------------------------------------------------

    def trigger(self) -> bool:
        """Deliver one tick now, subject to the busy guard.

        Returns ``True`` if the callback was dispatched, ``False`` if the
        scheduler is not active or the previous tick is still running.
        """
        if not self.is_active or self._on_tick is None:
            return False
        if self.is_busy:
            self._metrics.increment("spconflict.ticks_dropped_total")
            log.debug(
                "Tick dropped: previous check still in flight",
                extra={"extra_fields": {"op": "tick", "interval_ms": self._interval_ms}},
            )
            return False
        self._inflight = asyncio.ensure_future(self._on_tick())
        self._inflight.add_done_callback(self._tick_done)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep((self._interval_ms or self.min_interval_ms) / 1000)
            self.trigger()

    def _report_active(self) -> None:
        self._metrics.gauge("spconflict.polling_active", 1.0 if self.is_active else 0.0)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @staticmethod
    def _tick_done(future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log.error(
                "Polling tick failed",
                exc_info=exc,
                extra={"extra_fields": {"op": "tick", "error": str(exc)}},
            )
