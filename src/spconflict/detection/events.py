"""Observer channel for conflict transitions.

A detector owns one :class:`ConflictEvents`.  Any number of listeners can
subscribe to the *detected* and *resolved* transitions without the
detector knowing who they are.  Dispatch is synchronous: listeners run
inside the operation that observed the transition, in subscription order.
A listener that raises is logged and skipped; the others still run.
Coroutine listeners are started as tasks; the channel holds them until
they finish and logs any exception they end with.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from spconflict.models import ConflictInfo
from spconflict.observability import get_logger

log = get_logger("spconflict.events")

DetectedListener = Callable[[ConflictInfo], Any]
ResolvedListener = Callable[[], Any]


class ConflictEvents:
    """Listener registry for conflict-detected and conflict-resolved events."""

    def __init__(self) -> None:
        self._detected: list[DetectedListener] = []
        self._resolved: list[ResolvedListener] = []
        self._tasks: set[asyncio.Future[Any]] = set()

    @property
    def listener_count(self) -> int:
        return len(self._detected) + len(self._resolved)

    @property
    def pending_count(self) -> int:
        """Coroutine listeners started but not yet finished."""
        return len(self._tasks)

    def subscribe_detected(self, listener: DetectedListener) -> Callable[[], None]:
        """Register *listener* for new conflicts.  Returns an unsubscribe callable."""
        self._detected.append(listener)
        return lambda: self._discard(self._detected, listener)

    def subscribe_resolved(self, listener: ResolvedListener) -> Callable[[], None]:
        """Register *listener* for resolved conflicts.  Returns an unsubscribe callable."""
        self._resolved.append(listener)
        return lambda: self._discard(self._resolved, listener)

    def emit_detected(
        self,
        info: ConflictInfo,
        primary: DetectedListener | None = None,
    ) -> int:
        """Call *primary* and then every detected-listener with *info*.

        Returns the number of listeners that completed without raising.  A
        coroutine listener counts once it has been started.
        """
        listeners = ([primary] if primary is not None else []) + list(self._detected)
        return sum(self._call(listener, "conflict_detected", info) for listener in listeners)

    def emit_resolved(self, primary: ResolvedListener | None = None) -> int:
        """Call *primary* and then every resolved-listener."""
        listeners = ([primary] if primary is not None else []) + list(self._resolved)
        return sum(self._call(listener, "conflict_resolved") for listener in listeners)

    def clear(self) -> None:
        self._detected.clear()
        self._resolved.clear()

    @staticmethod
    def _discard(listeners: list[Any], listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def _call(self, listener: Callable[..., Any], event: str, *args: Any) -> bool:
        try:
            result = listener(*args)
        except Exception as exc:
            log.error(
                "Listener raised",
                exc_info=exc,
                extra={"extra_fields": {"event": event, "error": str(exc)}},
            )
            return False
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(lambda done: self._listener_done(done, event))
        return True

    def _listener_done(self, task: asyncio.Future[Any], event: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "Listener raised",
                exc_info=exc,
                extra={"extra_fields": {"event": event, "error": str(exc)}},
            )
