"""Holder for the baseline version stamp of a watched record."""

from __future__ import annotations

from spconflict.models import VersionStamp


class SnapshotStore:
    """Single-owner container for the last known :class:`VersionStamp`.

    Stamps are replaced wholesale; the store never edits one in place.
    """

    __slots__ = ("_stamp",)

    def __init__(self) -> None:
        self._stamp: VersionStamp | None = None

    def get(self) -> VersionStamp | None:
        return self._stamp

    def set(self, stamp: VersionStamp) -> None:
        if not isinstance(stamp, VersionStamp):
            raise TypeError(f"expected VersionStamp, got {type(stamp).__name__}")
        self._stamp = stamp

    def clear(self) -> None:
        self._stamp = None

    @property
    def is_empty(self) -> bool:
        return self._stamp is None
