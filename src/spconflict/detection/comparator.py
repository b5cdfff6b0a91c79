"""Version comparison and conflict severity classification.

Compares a baseline :class:`VersionStamp` against the current remote stamp
of the same record.  Version tokens are opaque: two stamps conflict exactly
when their ``version`` strings differ.  No ordering between versions is
assumed, so a remote revert to the baseline token reads as "no conflict".
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, timezone

from spconflict.models import ConflictInfo, ConflictSeverity, VersionStamp
from spconflict.options import (
    HIGH_SEVERITY_THRESHOLD,
    MEDIUM_SEVERITY_THRESHOLD,
    RECENT_CONFLICT_THRESHOLD,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed(now: datetime, then: datetime) -> timedelta:
    # Naive timestamps are taken to be UTC so they can be compared with an
    # aware ``now``.
    if then.tzinfo is None and now.tzinfo is not None:
        then = then.replace(tzinfo=timezone.utc)
    elif now.tzinfo is None and then.tzinfo is not None:
        now = now.replace(tzinfo=timezone.utc)
    return now - then


def classify_severity(elapsed: timedelta) -> ConflictSeverity:
    """Map the age of the conflicting remote edit to a severity level."""
    if elapsed < HIGH_SEVERITY_THRESHOLD:
        return ConflictSeverity.HIGH
    if elapsed < MEDIUM_SEVERITY_THRESHOLD:
        return ConflictSeverity.MEDIUM
    return ConflictSeverity.LOW


def is_recent(elapsed: timedelta) -> bool:
    """Return ``True`` if a remote edit *elapsed* ago counts as recent."""
    return elapsed < RECENT_CONFLICT_THRESHOLD


def compare(
    original: VersionStamp,
    current: VersionStamp,
    item_id: int,
    list_id: str,
    *,
    classify: bool = False,
    now: datetime | None = None,
) -> ConflictInfo:
    """Compare the baseline *original* with the remote *current* stamp.

    Parameters
    ----------
    original:
        The locally held baseline stamp.
    current:
        The stamp just fetched from the backing store.
    item_id, list_id:
        Identity of the compared record, copied into the result.
    classify:
        Also compute ``severity``, ``time_since_conflict`` and ``is_recent``.
    now:
        Reference time for classification.  Defaults to the current UTC time.

    Returns
    -------
    ConflictInfo
        Always fully populated with both versions and both timestamps.
    """
    info = ConflictInfo(
        has_conflict=original.version != current.version,
        original_version=original.version,
        current_version=current.version,
        last_modified_by=current.modified_by.name,
        last_modified=current.modified,
        original_modified=original.modified,
        item_id=item_id,
        list_id=list_id,
    )
    if classify:
        info = enhance(info, now=now)
    return info


def enhance(info: ConflictInfo, now: datetime | None = None) -> ConflictInfo:
    """Return a copy of *info* with the classification fields filled in.

    A non-conflicting result is always ``low`` severity and never recent.
    """
    elapsed = _elapsed(now or _utcnow(), info.last_modified)
    if not info.has_conflict:
        return dataclasses.replace(
            info,
            severity=ConflictSeverity.LOW,
            time_since_conflict=elapsed,
            is_recent=False,
        )
    return dataclasses.replace(
        info,
        severity=classify_severity(elapsed),
        time_since_conflict=elapsed,
        is_recent=is_recent(elapsed),
    )
