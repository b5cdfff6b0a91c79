"""The contract a detector uses to read a record's current version stamp."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from spconflict.models import VersionStamp


@runtime_checkable
class StampFetcher(Protocol):
    """Anything that can fetch the current :class:`VersionStamp` of a record.

    Implementations raise
    :class:`~spconflict.errors.RecordNotFoundError` when the record is gone,
    :class:`~spconflict.errors.PermissionDeniedError` when read access is
    missing, and :class:`~spconflict.errors.FetchFailedError` for any other
    transport or backing-store failure.
    """

    async def fetch_stamp(self, list_id: str, item_id: int) -> VersionStamp:
        ...
