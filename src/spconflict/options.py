"""Detection options for spconflict.

:class:`ConflictDetectionOptions` is a frozen dataclass captured by a
detector at construction time.  Changing options never mutates an existing
instance: :meth:`ConflictDetectionOptions.merged` builds a new one, so a
detector never observes a partially applied configuration.

The module-level constants define the polling band and the severity
thresholds used by the comparator.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Literal

from spconflict.models import ConflictInfo

# ---------------------------------------------------------------------------
# Timing constants
# ---------------------------------------------------------------------------

DEFAULT_POLLING_INTERVAL_MS: int = 30_000
MIN_POLLING_INTERVAL_MS: int = 5_000
MAX_POLLING_INTERVAL_MS: int = 300_000

HIGH_SEVERITY_THRESHOLD: timedelta = timedelta(minutes=1)
MEDIUM_SEVERITY_THRESHOLD: timedelta = timedelta(minutes=5)
RECENT_CONFLICT_THRESHOLD: timedelta = timedelta(minutes=5)

NOTIFICATION_POSITIONS: tuple[str, ...] = ("top", "bottom", "inline")

ConflictDetectedCallback = Callable[[ConflictInfo], Any]
ConflictResolvedCallback = Callable[[], Any]


# ---------------------------------------------------------------------------
# Options dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConflictDetectionOptions:
    """Complete configuration for a conflict detector.

    Parameters
    ----------
    check_on_save:
        Callers should run a conflict check before saving.
    check_interval_ms:
        Polling interval in milliseconds.  ``None`` disables polling.  The
        scheduler clamps the value into
        [:data:`MIN_POLLING_INTERVAL_MS`, :data:`MAX_POLLING_INTERVAL_MS`].
    show_notification:
        Whether a UI collaborator should tell the user about a conflict.
    block_save:
        Whether a detected conflict should prevent saving.
    log_conflicts:
        Emit lifecycle and conflict log records.  Errors are always logged.
    notification_position:
        Where a UI collaborator should place its notice.

        * ``"top"`` / ``"bottom"`` -- a bar at the edge of the form.
        * ``"inline"`` -- inside the form body.
    custom_message:
        Optional text to show instead of the default conflict message.
    on_conflict_detected:
        Called with the :class:`ConflictInfo` when a conflict first appears.
    on_conflict_resolved:
        Called when a flagged conflict is cleared by a snapshot update.
    """

    check_on_save: bool = True

    check_interval_ms: int | None = None

    show_notification: bool = True

    block_save: bool = False

    log_conflicts: bool = True

    notification_position: Literal["top", "bottom", "inline"] = "top"

    custom_message: str | None = None

    on_conflict_detected: ConflictDetectedCallback | None = None

    on_conflict_resolved: ConflictResolvedCallback | None = None

    def __post_init__(self) -> None:
        """Validate option values after initialization."""
        if self.notification_position not in NOTIFICATION_POSITIONS:
            raise ValueError(
                f"notification_position must be one of {NOTIFICATION_POSITIONS}, "
                f"got {self.notification_position!r}"
            )
        if self.check_interval_ms is not None and self.check_interval_ms <= 0:
            raise ValueError(
                f"check_interval_ms must be > 0 or None, got {self.check_interval_ms}"
            )

    @property
    def polling_enabled(self) -> bool:
        return self.check_interval_ms is not None

    def merged(self, **changes: Any) -> ConflictDetectionOptions:
        """Return a new options object with *changes* applied on top.

        Raises :class:`TypeError` for unknown option names and
        :class:`ValueError` for invalid values.
        """
        return dataclasses.replace(self, **changes)


DEFAULT_OPTIONS = ConflictDetectionOptions()
