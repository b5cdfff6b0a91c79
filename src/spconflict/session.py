"""Consumer-facing facade over a :class:`ConflictDetector`.

:class:`ConflictSession` is what an editing form holds on to.  It answers
with plain booleans instead of :class:`DetectionResult` objects, exposes the
live detector for advanced callers, and adds the pre-save check that turns
a detection result into a save decision.

Usage::

    session = ConflictSession(fetcher, list_id, item_id, options="strict")
    await session.initialize()
    ...
    verdict = await session.check_before_save()
    if verdict.can_save:
        stamp = await save_item(...)
        await session.handle_successful_save(stamp)
    else:
        show(verdict.message)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from spconflict.detection.detector import ConflictDetector
from spconflict.detection.fetcher import StampFetcher
from spconflict.models import (
    ConflictInfo,
    DetectionState,
    PreSaveCheckResult,
    VersionStamp,
)
from spconflict.options import DEFAULT_POLLING_INTERVAL_MS, ConflictDetectionOptions
from spconflict.presets import resolve_options

BLOCKED_MESSAGE = "Cannot save due to conflicts. Please refresh and try again."
WARNING_MESSAGE = "Warning: This record has been modified by another user."
UNAVAILABLE_MESSAGE = "Unable to check for conflicts. Please try again."


class ConflictSession:
    """Boolean-returning facade with pre-save checks.

    Parameters
    ----------
    fetcher, list_id, item_id, options:
        Forwarded to :class:`ConflictDetector`.  The detector is built
        immediately, so an invalid identity raises here.
    enabled:
        A disabled session never contacts the backing store; every
        operation answers ``False`` and saves are always allowed.
    metrics:
        Optional metrics hook forwarded to the detector.
    """

    def __init__(
        self,
        fetcher: StampFetcher,
        list_id: str,
        item_id: int,
        options: ConflictDetectionOptions | Mapping[str, Any] | str | None = None,
        *,
        enabled: bool = True,
        metrics: Any | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._list_id = list_id
        self._item_id = item_id
        self._options = resolve_options(options)
        self._enabled = enabled
        self._metrics = metrics
        self._initialized = False
        self._detector: ConflictDetector | None = (
            self._build_detector() if enabled else None
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def has_conflict(self) -> bool:
        return self.refresh_state().has_conflict

    @property
    def conflict_info(self) -> ConflictInfo | None:
        return self.refresh_state().conflict_info

    @property
    def error(self) -> str | None:
        return self.refresh_state().error

    @property
    def is_polling_active(self) -> bool:
        return self._detector is not None and self._detector.is_polling_active()

    def get_detector(self) -> ConflictDetector | None:
        """Return the live detector, or ``None`` when disabled or disposed."""
        return self._detector

    def refresh_state(self) -> DetectionState:
        """Return an immutable copy of the detector's current state."""
        if self._detector is None:
            return DetectionState()
        return self._detector.get_state()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Take the baseline snapshot.  Re-initializing re-baselines."""
        if not self._enabled:
            return False
        if self._detector is None or self._detector.is_disposed:
            self._detector = self._build_detector()
        result = await self._detector.initialize()
        self._initialized = result.success
        return result.success

    async def check_for_conflicts(self) -> bool:
        """Return whether the record currently conflicts with the baseline.

        On a failed fetch the previously known answer is returned; the
        failure is visible through :attr:`error`.
        """
        if not self._ready():
            return False
        result = await self._detector.check_for_conflicts()
        return result.has_conflict

    async def has_changed_since_last_check(self) -> bool:
        if not self._ready():
            return False
        result = await self._detector.has_changed_since_last_check()
        return result.success and result.has_conflict

    async def update_snapshot(self, stamp: VersionStamp | None = None) -> bool:
        if not self._ready():
            return False
        result = await self._detector.update_snapshot(stamp)
        return result.success

    async def check_before_save(self) -> PreSaveCheckResult:
        """Decide whether a save may go ahead.

        * ``check_on_save`` off, or session disabled -- save allowed, no fetch.
        * conflict with ``block_save`` -- save refused.
        * conflict without ``block_save`` -- save allowed with a warning
          (``custom_message`` if configured).
        * check failed -- save allowed unless ``block_save`` is set.
        """
        if not self._enabled or not self._options.check_on_save:
            return PreSaveCheckResult(can_save=True, has_conflict=False)
        if not self._ready():
            return PreSaveCheckResult(
                can_save=not self._options.block_save,
                has_conflict=False,
                message=UNAVAILABLE_MESSAGE,
            )

        result = await self._detector.check_for_conflicts()
        if not result.success:
            return PreSaveCheckResult(
                can_save=not self._options.block_save,
                has_conflict=result.has_conflict,
                conflict_info=self.conflict_info,
                message=UNAVAILABLE_MESSAGE,
            )
        if not result.has_conflict:
            return PreSaveCheckResult(
                can_save=True, has_conflict=False, conflict_info=result.conflict_info,
            )
        if self._options.block_save:
            return PreSaveCheckResult(
                can_save=False,
                has_conflict=True,
                conflict_info=result.conflict_info,
                message=self._options.custom_message or BLOCKED_MESSAGE,
            )
        return PreSaveCheckResult(
            can_save=True,
            has_conflict=True,
            conflict_info=result.conflict_info,
            message=self._options.custom_message or WARNING_MESSAGE,
        )

    async def handle_successful_save(self, stamp: VersionStamp | None = None) -> bool:
        """Re-baseline after the caller's own save succeeded.

        Pass the stamp from the save response to skip the extra fetch.
        """
        return await self.update_snapshot(stamp)

    def pause_polling(self) -> None:
        if self._detector is not None:
            self._detector.pause_polling()

    def resume_polling(self) -> None:
        if self._detector is not None:
            self._detector.resume_polling()

    def update_options(self, **changes: Any) -> ConflictDetectionOptions:
        self._options = self._options.merged(**changes)
        if self._detector is not None:
            self._detector.update_options(**changes)
        return self._options

    def dispose(self) -> None:
        """Dispose the detector.  A later :meth:`initialize` starts afresh."""
        if self._detector is not None:
            self._detector.dispose()
            self._detector = None
        self._initialized = False

    async def __aenter__(self) -> ConflictSession:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_detector(self) -> ConflictDetector:
        return ConflictDetector(
            self._fetcher,
            self._list_id,
            self._item_id,
            self._options,
            metrics=self._metrics,
        )

    def _ready(self) -> bool:
        return self._enabled and self._initialized and self._detector is not None


def create_monitor(
    fetcher: StampFetcher,
    list_id: str,
    item_id: int,
    interval_ms: int = DEFAULT_POLLING_INTERVAL_MS,
    **overrides: Any,
) -> ConflictSession:
    """Build a quiet session that only polls.

    Notifications, save blocking and logging are off; call
    :meth:`ConflictSession.initialize` to start monitoring.
    """
    options = ConflictDetectionOptions(
        check_interval_ms=interval_ms,
        show_notification=False,
        block_save=False,
        log_conflicts=False,
    )
    if overrides:
        options = options.merged(**overrides)
    return ConflictSession(fetcher, list_id, item_id, options)
