"""Public data models for spconflict.

This module contains every value type, result type and enum referenced by
the public API surface.  All types are plain dataclasses with no behaviour
beyond what is needed for structural equality.  Value types are frozen so
that a stamp or a state copy handed to a caller can never change under it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ConflictSeverity(str, Enum):
    """How urgent a detected conflict is, based on the age of the remote edit."""

    LOW = "low"
    """The remote edit is five minutes old or older."""

    MEDIUM = "medium"
    """The remote edit happened between one and five minutes ago."""

    HIGH = "high"
    """The remote edit happened less than a minute ago."""


class DetectorStatus(str, Enum):
    """Lifecycle states of a :class:`~spconflict.detection.ConflictDetector`."""

    UNINITIALIZED = "uninitialized"
    """Constructed, no baseline snapshot yet."""

    READY = "ready"
    """A baseline exists and no check is running."""

    CHECKING = "checking"
    """A conflict check is awaiting the remote stamp."""

    DISPOSED = "disposed"
    """Terminal.  Every further call is a no-op."""


class ResolutionAction(str, Enum):
    """What the caller decided to do about a detected conflict.

    The detector never acts on these; they name the choice a caller makes
    before calling :meth:`~spconflict.detection.ConflictDetector.update_snapshot`
    or abandoning the save.
    """

    REFRESH = "refresh"
    OVERWRITE = "overwrite"
    CANCEL = "cancel"

    @property
    def message(self) -> str:
        return _RESOLUTION_MESSAGES[self]


_RESOLUTION_MESSAGES = {
    ResolutionAction.REFRESH: "Reload the latest version and discard local changes.",
    ResolutionAction.OVERWRITE: "Save local changes over the remote version.",
    ResolutionAction.CANCEL: "Keep editing without saving.",
}


# ---------------------------------------------------------------------------
# Record identity and version stamps
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RecordIdentity:
    """Identifies the watched record.

    Attributes
    ----------
    list_id:
        The list GUID.
    item_id:
        The positive integer item ID within the list.
    """

    list_id: str
    item_id: int


@dataclass(frozen=True)
class Actor:
    """The user who last modified a record."""

    name: str = "Unknown"
    contact_id: str | None = None


@dataclass(frozen=True)
class VersionStamp:
    """The version token, modification time and editor of a record.

    Attributes
    ----------
    version:
        Opaque version token (the item ETag).  Only compared for identity.
    modified:
        When the record was last modified.
    modified_by:
        Who last modified the record.
    """

    version: str
    modified: datetime
    modified_by: Actor = Actor()


# ---------------------------------------------------------------------------
# Detection output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConflictInfo:
    """Outcome of comparing a baseline stamp with the current remote stamp.

    Both sides are always populated, whether or not a conflict holds.
    The classification fields are only set when severity was requested.
    """

    has_conflict: bool
    original_version: str
    current_version: str
    last_modified_by: str
    last_modified: datetime
    original_modified: datetime
    item_id: int
    list_id: str
    severity: ConflictSeverity | None = None
    time_since_conflict: timedelta | None = None
    is_recent: bool | None = None


@dataclass(frozen=True)
class DetectionState:
    """Snapshot of a detector's observable state.

    The detector replaces its state wholesale on every transition, so an
    instance obtained from :meth:`ConflictDetector.get_state` never changes.
    """

    is_checking: bool = False
    has_conflict: bool = False
    conflict_info: ConflictInfo | None = None
    last_checked: datetime | None = None
    error: str | None = None
    error_code: str | None = None
    is_polling_active: bool = False


@dataclass(frozen=True)
class DetectionResult:
    """Return value of every asynchronous detector operation.

    ``has_conflict`` tells whether the operation found the record diverged
    from the baseline.  On failure it carries the detector's prior conflict
    flag, since a failed fetch never clears a known conflict.
    """

    success: bool
    conflict_info: ConflictInfo | None = None
    error: str | None = None
    error_code: str | None = None
    has_conflict: bool = False


@dataclass(frozen=True)
class PreSaveCheckResult:
    """Answer to "may I save now?" produced by a pre-save conflict check."""

    can_save: bool
    has_conflict: bool
    conflict_info: ConflictInfo | None = None
    message: str | None = None
