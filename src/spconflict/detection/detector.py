"""Conflict detector state machine.

:class:`ConflictDetector` watches one record.  It keeps the baseline
:class:`VersionStamp` taken at :meth:`~ConflictDetector.initialize` and
compares it with the remote stamp on demand or on a polling tick::

    UNINITIALIZED --initialize--> READY --check--> CHECKING --> READY
          \\                          \\                            /
           `---------------------------`---- dispose ---> DISPOSED

Every asynchronous operation returns a :class:`DetectionResult`.  Fetch
failures are recorded in :class:`DetectionState` and reported in the
result; they never propagate as exceptions, so a transient outage cannot
break a polling loop.  Operations on one detector are serialized, and
concurrent :meth:`~ConflictDetector.check_for_conflicts` calls share a
single in-flight check.

Usage::

    async with ConflictDetector(fetcher, list_id, 42, "realtime") as detector:
        detector.events.subscribe_detected(lambda info: print(info.last_modified_by))
        result = await detector.check_for_conflicts()
        if result.has_conflict:
            await detector.update_snapshot()
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from spconflict.detection.comparator import compare
from spconflict.detection.events import ConflictEvents
from spconflict.detection.fetcher import StampFetcher
from spconflict.detection.scheduler import PollingScheduler
from spconflict.detection.snapshot import SnapshotStore
from spconflict.errors import (
    ConflictConfigurationError,
    ConflictDetectionError,
    ErrorCode,
)
from spconflict.models import (
    DetectionResult,
    DetectionState,
    DetectorStatus,
    RecordIdentity,
    VersionStamp,
)
from spconflict.observability import NoopMetricsHook, get_logger
from spconflict.options import ConflictDetectionOptions
from spconflict.presets import resolve_options

log = get_logger("spconflict.detector")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConflictDetector:
    """Optimistic-concurrency conflict detector for a single record.

    Parameters
    ----------
    fetcher:
        A :class:`~spconflict.detection.fetcher.StampFetcher`.
    list_id:
        GUID of the list holding the record.  Must not be blank.
    item_id:
        Positive item ID of the record.
    options:
        A :class:`ConflictDetectionOptions`, a mapping of overrides, a
        preset name, or ``None`` for the defaults.
    scheduler:
        Polling scheduler to own.  A default :class:`PollingScheduler` is
        created when omitted.
    metrics:
        Optional :class:`~spconflict.observability.MetricsHook`.

    Raises
    ------
    ConflictConfigurationError
        If the fetcher, list ID or item ID is invalid.
    """

    def __init__(
        self,
        fetcher: StampFetcher,
        list_id: str,
        item_id: int,
        options: ConflictDetectionOptions | Mapping[str, Any] | str | None = None,
        *,
        scheduler: PollingScheduler | None = None,
        metrics: Any | None = None,
    ) -> None:
        if fetcher is None or not callable(getattr(fetcher, "fetch_stamp", None)):
            raise ConflictConfigurationError(
                ErrorCode.INVALID_FETCHER,
                "A stamp fetcher with a fetch_stamp() coroutine is required",
            )
        if not isinstance(list_id, str) or not list_id.strip():
            raise ConflictConfigurationError(
                ErrorCode.INVALID_LIST_ID,
                "list_id is required",
                context={"list_id": list_id},
            )
        if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id <= 0:
            raise ConflictConfigurationError(
                ErrorCode.INVALID_ITEM_ID,
                f"item_id must be a positive integer, got {item_id!r}",
                context={"item_id": item_id},
            )

        self._fetcher = fetcher
        self._identity = RecordIdentity(list_id=list_id.strip(), item_id=item_id)
        self._options = resolve_options(options)
        self._metrics = metrics if metrics is not None else NoopMetricsHook()
        self._scheduler = scheduler or PollingScheduler(metrics=self._metrics)
        self._store = SnapshotStore()
        self._events = ConflictEvents()
        self._state = DetectionState()
        self._status = DetectorStatus.UNINITIALIZED
        self._lock = asyncio.Lock()
        self._pending_check: asyncio.Future[DetectionResult] | None = None

        self._log_info("ConflictDetector created", op="create")

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def identity(self) -> RecordIdentity:
        return self._identity

    @property
    def status(self) -> DetectorStatus:
        return self._status

    @property
    def is_disposed(self) -> bool:
        return self._status is DetectorStatus.DISPOSED

    @property
    def baseline(self) -> VersionStamp | None:
        """The stored baseline stamp, or ``None`` before initialization."""
        return self._store.get()

    @property
    def events(self) -> ConflictEvents:
        return self._events

    @property
    def state(self) -> DetectionState:
        return self.get_state()

    @property
    def effective_interval_ms(self) -> int | None:
        """The polling interval after clamping, or ``None`` if polling is off."""
        if self._options.check_interval_ms is None:
            return None
        return self._scheduler.clamp(self._options.check_interval_ms)

    def get_state(self) -> DetectionState:
        """Return an immutable copy of the current detection state."""
        return dataclasses.replace(self._state, is_polling_active=self.is_polling_active())

    def get_options(self) -> ConflictDetectionOptions:
        return self._options

    def is_polling_active(self) -> bool:
        return not self.is_disposed and self._scheduler.is_active

    # ------------------------------------------------------------------
    # Detection operations
    # ------------------------------------------------------------------

    async def initialize(self) -> DetectionResult:
        """Take the baseline snapshot and move to READY.

        Starts polling when ``check_interval_ms`` is configured.
        """
        if self.is_disposed:
            return self._disposed_result()

        async with self._lock:
            try:
                stamp = await self._fetch()
            except Exception as exc:
                return self._record_failure("initialize", exc)
            if self.is_disposed:
                return self._disposed_result()
            result = self._rebaseline(stamp, "initialize")

        if self._options.polling_enabled:
            self.start_polling()
        return result

    async def check_for_conflicts(self) -> DetectionResult:
        """Compare the remote stamp with the baseline and update state.

        Fires ``on_conflict_detected`` and the detected-listeners only when
        a conflict appears; re-checking a known conflict fires nothing.
        Calls made while a check is in flight share that check's result.
        """
        if self.is_disposed:
            return self._disposed_result()
        if self._pending_check is None or self._pending_check.done():
            self._pending_check = asyncio.ensure_future(self._run_check())
        return await asyncio.shield(self._pending_check)

    async def has_changed_since_last_check(self) -> DetectionResult:
        """Report whether the record diverged, touching only ``last_checked``.

        Neither the conflict flag nor the events are affected.
        """
        if self.is_disposed:
            return self._disposed_result()

        async with self._lock:
            baseline = self._store.get()
            if baseline is None:
                return self._not_initialized_result("has_changed_since_last_check")
            try:
                current = await self._fetch()
            except Exception as exc:
                if self.is_disposed:
                    return self._disposed_result()
                message, code = self._describe_failure("has_changed_since_last_check", exc)
                return DetectionResult(
                    success=False,
                    error=message,
                    error_code=code,
                    has_conflict=self._state.has_conflict,
                )
            if self.is_disposed:
                return self._disposed_result()

            info = compare(
                baseline, current, self._identity.item_id, self._identity.list_id,
            )
            self._state = dataclasses.replace(self._state, last_checked=_utcnow())
            return DetectionResult(
                success=True, conflict_info=info, has_conflict=info.has_conflict,
            )

    async def update_snapshot(self, stamp: VersionStamp | None = None) -> DetectionResult:
        """Accept the remote version as the new baseline.

        Parameters
        ----------
        stamp:
            A stamp already known to be current, for example one parsed from
            a save response.  When omitted the stamp is fetched.

        Clears the conflict flag and fires ``on_conflict_resolved`` and the
        resolved-listeners if a conflict was flagged.  A failed fetch leaves
        the baseline and the conflict flag untouched.  A *stamp* that is not a
        :class:`VersionStamp` yields a failed ``GENERAL_ERROR`` result and
        changes nothing.
        """
        if self.is_disposed:
            return self._disposed_result()
        if stamp is not None and not isinstance(stamp, VersionStamp):
            message = f"stamp must be a VersionStamp, got {type(stamp).__name__}"
            log.warning(
                "Rejected update_snapshot stamp",
                extra={"extra_fields": self._fields(op="update_snapshot", error=message)},
            )
            return DetectionResult(
                success=False,
                error=message,
                error_code=ErrorCode.GENERAL_ERROR,
                has_conflict=self._state.has_conflict,
            )

        async with self._lock:
            if stamp is None:
                try:
                    stamp = await self._fetch()
                except Exception as exc:
                    return self._record_failure("update_snapshot", exc)
            if self.is_disposed:
                return self._disposed_result()
            return self._rebaseline(stamp, "update_snapshot")

    # ------------------------------------------------------------------
    # Polling controls
    # ------------------------------------------------------------------

    def start_polling(self) -> bool:
        """Start background checks at the configured interval.

        Returns ``False`` (and does nothing) when disposed, when no
        ``check_interval_ms`` is configured, when already polling, or when
        called without a running event loop.
        """
        if self.is_disposed or self._options.check_interval_ms is None:
            return False
        try:
            started = self._scheduler.start(
                self._options.check_interval_ms, self._on_poll_tick,
            )
        except RuntimeError as exc:
            log.error(
                "Cannot start polling without a running event loop",
                extra={"extra_fields": self._fields(op="start_polling", error=str(exc))},
            )
            return False
        if started:
            self._log_info(
                "Polling started",
                op="start_polling",
                interval_ms=self._scheduler.interval_ms,
            )
        return started

    def stop_polling(self) -> None:
        if self._scheduler.is_started:
            self._scheduler.stop()
            if not self.is_disposed:
                self._log_info("Polling stopped", op="stop_polling")

    def pause_polling(self) -> None:
        if self.is_disposed or not self._scheduler.is_active:
            return
        self._scheduler.pause()
        self._log_info("Polling paused", op="pause_polling")

    def resume_polling(self) -> None:
        if self.is_disposed or not self._scheduler.is_paused:
            return
        self._scheduler.resume()
        self._log_info("Polling resumed", op="resume_polling")

    # ------------------------------------------------------------------
    # Configuration and teardown
    # ------------------------------------------------------------------

    def update_options(self, **changes: Any) -> ConflictDetectionOptions:
        """Merge *changes* into a new options object and apply it.

        A changed ``check_interval_ms`` reschedules polling: a running poll
        moves to the new interval, ``None`` stops it, and an initialized
        detector that was not polling starts.

        Raises
        ------
        TypeError
            For unknown option names.
        ValueError
            For invalid option values.
        """
        if self.is_disposed:
            return self._options

        old_interval = self._options.check_interval_ms
        self._options = self._options.merged(**changes)
        new_interval = self._options.check_interval_ms

        if old_interval != new_interval:
            if new_interval is None:
                self.stop_polling()
            elif self._scheduler.is_started:
                self._scheduler.update_interval(new_interval)
            elif self._status is not DetectorStatus.UNINITIALIZED:
                self.start_polling()

        self._log_info("Options updated", op="update_options", changed=sorted(changes))
        return self._options

    def dispose(self) -> None:
        """Stop polling, drop the baseline and enter the terminal state.

        Idempotent.  A fetch that completes after this call has no effect.
        """
        if self.is_disposed:
            return
        self._scheduler.stop()
        self._store.clear()
        self._events.clear()
        self._status = DetectorStatus.DISPOSED
        self._state = dataclasses.replace(self._state, is_checking=False)
        self._log_info("ConflictDetector disposed", op="dispose")

    async def __aenter__(self) -> ConflictDetector:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fetch(self) -> VersionStamp:
        return await self._fetcher.fetch_stamp(
            self._identity.list_id, self._identity.item_id,
        )

    async def _run_check(self) -> DetectionResult:
        async with self._lock:
            if self.is_disposed:
                return self._disposed_result()
            baseline = self._store.get()
            if baseline is None:
                return self._not_initialized_result("check_for_conflicts")

            self._status = DetectorStatus.CHECKING
            self._state = dataclasses.replace(self._state, is_checking=True)
            t0 = time.monotonic()
            try:
                current = await self._fetch()
            except Exception as exc:
                return self._record_failure("check_for_conflicts", exc)
            finally:
                if self._status is DetectorStatus.CHECKING:
                    self._status = DetectorStatus.READY
            if self.is_disposed:
                return self._disposed_result()

            self._metrics.timing(
                "spconflict.check_duration_ms", (time.monotonic() - t0) * 1000,
            )
            self._metrics.increment("spconflict.checks_total")

            info = compare(
                baseline, current,
                self._identity.item_id, self._identity.list_id,
                classify=True,
            )
            newly_detected = info.has_conflict and not self._state.has_conflict
            self._state = dataclasses.replace(
                self._state,
                is_checking=False,
                has_conflict=info.has_conflict,
                conflict_info=info,
                last_checked=_utcnow(),
                error=None,
                error_code=None,
            )

            if newly_detected:
                self._metrics.increment("spconflict.conflicts_detected_total")
                if self._options.log_conflicts:
                    log.warning(
                        "Conflict detected",
                        extra={
                            "extra_fields": self._fields(
                                op="check_for_conflicts",
                                original_version=info.original_version,
                                current_version=info.current_version,
                                last_modified_by=info.last_modified_by,
                                severity=info.severity,
                            )
                        },
                    )
                self._events.emit_detected(info, self._options.on_conflict_detected)

            return DetectionResult(
                success=True, conflict_info=info, has_conflict=info.has_conflict,
            )

    async def _on_poll_tick(self) -> None:
        result = await self.check_for_conflicts()
        if result.success and result.has_conflict:
            self._log_info("Polling found a conflict", op="poll")

    def _rebaseline(self, stamp: VersionStamp, op: str) -> DetectionResult:
        had_conflict = self._state.has_conflict
        self._store.set(stamp)
        self._status = DetectorStatus.READY
        self._state = dataclasses.replace(
            self._state,
            is_checking=False,
            has_conflict=False,
            conflict_info=None,
            last_checked=_utcnow(),
            error=None,
            error_code=None,
        )
        self._log_info("Snapshot updated", op=op, version=stamp.version)

        if had_conflict:
            self._metrics.increment("spconflict.conflicts_resolved_total")
            self._events.emit_resolved(self._options.on_conflict_resolved)

        info = compare(stamp, stamp, self._identity.item_id, self._identity.list_id)
        return DetectionResult(success=True, conflict_info=info, has_conflict=False)

    def _describe_failure(self, op: str, exc: Exception) -> tuple[str, str]:
        if isinstance(exc, ConflictDetectionError):
            code = str(getattr(exc.code, "value", exc.code))
            detail = exc.message
        else:
            code = ErrorCode.GENERAL_ERROR.value
            detail = str(exc) or type(exc).__name__
        message = f"{op} failed: {detail}"
        self._metrics.increment(
            "spconflict.fetch_failures_total", tags={"op": op, "code": code},
        )
        log.error(
            "Stamp fetch failed",
            exc_info=exc,
            extra={"extra_fields": self._fields(op=op, code=code, error=detail)},
        )
        return message, code

    def _record_failure(self, op: str, exc: Exception) -> DetectionResult:
        if self.is_disposed:
            return self._disposed_result()
        message, code = self._describe_failure(op, exc)
        self._state = dataclasses.replace(
            self._state, is_checking=False, error=message, error_code=code,
        )
        return DetectionResult(
            success=False,
            error=message,
            error_code=code,
            has_conflict=self._state.has_conflict,
        )

    def _not_initialized_result(self, op: str) -> DetectionResult:
        log.warning(
            "Detector not initialized; call initialize() first",
            extra={"extra_fields": self._fields(op=op)},
        )
        return DetectionResult(
            success=False,
            error="ConflictDetector not initialized. Call initialize() first.",
            error_code=ErrorCode.NOT_INITIALIZED,
        )

    def _disposed_result(self) -> DetectionResult:
        return DetectionResult(
            success=False,
            error="ConflictDetector has been disposed",
            error_code=ErrorCode.DETECTOR_DISPOSED,
            has_conflict=self._state.has_conflict,
        )

    def _fields(self, **fields: Any) -> dict[str, Any]:
        return {
            "list_id": self._identity.list_id,
            "item_id": self._identity.item_id,
            **fields,
        }

    def _log_info(self, message: str, **fields: Any) -> None:
        if self._options.log_conflicts:
            log.info(message, extra={"extra_fields": self._fields(**fields)})
