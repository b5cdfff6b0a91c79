"""List item API wrapper and the SharePoint stamp fetcher.

:class:`AsyncItemAPI` is a thin wrapper around the list item endpoint.
:class:`SharePointStampFetcher` builds on it to satisfy the
:class:`~spconflict.detection.StampFetcher` protocol: it reads an item's
ETag, ``Modified`` time and ``Editor`` and turns them into a
:class:`VersionStamp`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from spconflict.config import SharePointConfig
from spconflict.errors import ConflictDetectionError, FetchFailedError
from spconflict.models import Actor, VersionStamp

from .transport import AsyncSharePointTransport

STAMP_SELECT = "Id,Modified,Editor/Title,Editor/Email"
STAMP_EXPAND = "Editor"


def _item_path(list_id: str, item_id: int) -> str:
    guid = list_id.strip().strip("{}")
    return f"/_api/web/lists(guid'{guid}')/items({item_id})"


def parse_stamp(payload: dict[str, Any]) -> VersionStamp:
    """Build a :class:`VersionStamp` from a list item REST payload.

    Accepts the verbose shape (``{"d": {"__metadata": {"etag": ...}}}``)
    and the minimal-metadata shape (``{"odata.etag": ...}``).

    Raises
    ------
    FetchFailedError
        If the payload has no ETag or no parseable ``Modified`` value.
    """
    item = payload.get("d", payload)
    if not isinstance(item, dict):
        raise FetchFailedError("List item payload is not an object")

    metadata = item.get("__metadata") or {}
    etag = (
        metadata.get("etag")
        or item.get("odata.etag")
        or item.get("@odata.etag")
    )
    if not etag:
        raise FetchFailedError(
            "List item payload carries no ETag",
            context={"keys": sorted(item)},
        )

    modified_raw = item.get("Modified", "")
    try:
        modified = datetime.fromisoformat(str(modified_raw).replace("Z", "+00:00"))
    except ValueError as exc:
        raise FetchFailedError(
            f"Unparseable Modified value {modified_raw!r}",
            context={"modified": modified_raw},
            cause=exc,
        ) from exc

    editor = item.get("Editor") or {}
    actor = Actor(
        name=editor.get("Title") or "Unknown",
        contact_id=editor.get("Email") or None,
    )
    return VersionStamp(version=str(etag), modified=modified, modified_by=actor)


class AsyncItemAPI:
    """Asynchronous wrapper for the SharePoint list item endpoint.

    Parameters
    ----------
    transport:
        A configured :class:`AsyncSharePointTransport` instance.
    """

    def __init__(self, transport: AsyncSharePointTransport) -> None:
        self._transport = transport

    async def retrieve(
        self,
        list_id: str,
        item_id: int,
        select: str | None = None,
        expand: str | None = None,
    ) -> dict[str, Any]:
        """Retrieve one list item.

        Parameters
        ----------
        list_id:
            The list GUID, with or without braces.
        item_id:
            The item ID.
        select:
            Optional ``$select`` clause.
        expand:
            Optional ``$expand`` clause.
        """
        params: dict[str, str] = {}
        if select:
            params["$select"] = select
        if expand:
            params["$expand"] = expand
        return await self._transport.request(
            "GET", _item_path(list_id, item_id), params=params,
        )


class SharePointStampFetcher:
    """Fetch version stamps of SharePoint list items over REST.

    Parameters
    ----------
    config:
        Used to build a private transport.  Mutually exclusive with
        *transport*.
    transport:
        A shared transport, e.g. one serving many detectors.  It is not
        closed by :meth:`close`.

    Usage::

        config = SharePointConfig(site_url="https://contoso.sharepoint.com/sites/hr",
                                  token=token)
        async with SharePointStampFetcher(config) as fetcher:
            stamp = await fetcher.fetch_stamp(list_id, 42)
    """

    def __init__(
        self,
        config: SharePointConfig | None = None,
        *,
        transport: AsyncSharePointTransport | None = None,
    ) -> None:
        if (config is None) == (transport is None):
            raise ValueError("Pass exactly one of config or transport")
        self._owns_transport = transport is None
        self._transport = transport or AsyncSharePointTransport(config)
        self._items = AsyncItemAPI(self._transport)

    async def fetch_stamp(self, list_id: str, item_id: int) -> VersionStamp:
        """Return the current :class:`VersionStamp` of the item."""
        try:
            payload = await self._items.retrieve(
                list_id, item_id, select=STAMP_SELECT, expand=STAMP_EXPAND,
            )
            return parse_stamp(payload)
        except ConflictDetectionError as exc:
            exc.context.setdefault("list_id", list_id)
            exc.context.setdefault("item_id", item_id)
            raise

    async def close(self) -> None:
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self) -> SharePointStampFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
