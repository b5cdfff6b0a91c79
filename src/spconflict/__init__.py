"""spconflict: optimistic-concurrency conflict detection for SharePoint list items.

Public re-exports
-----------------

* **Detection:** :class:`ConflictDetector`, :class:`ConflictSession`,
  :class:`PollingScheduler`, :func:`compare`
* **Options:** :class:`ConflictDetectionOptions`, presets
* **Backing store:** :class:`SharePointStampFetcher`, :class:`SharePointConfig`
* **Errors:** Every :class:`ConflictDetectionError` subclass and :class:`ErrorCode`
* **Models:** Stamps, conflict info, state and result types

Usage::

    from spconflict import ConflictDetector, SharePointConfig, SharePointStampFetcher

    config = SharePointConfig(site_url="https://contoso.sharepoint.com/sites/hr",
                              token=token)
    async with SharePointStampFetcher(config) as fetcher:
        async with ConflictDetector(fetcher, list_id, 42, "notify") as detector:
            result = await detector.check_for_conflicts()
"""

from __future__ import annotations

# ── Configuration ───────────────────────────────────────────────────────
from spconflict.config import SharePointConfig

# ── Detection ──────────────────────────────────────────────────────────
from spconflict.detection import (
    ConflictDetector,
    ConflictEvents,
    PollingScheduler,
    SnapshotStore,
    StampFetcher,
    clamp_interval,
    classify_severity,
    compare,
    enhance,
    is_recent,
)

# ── Errors ──────────────────────────────────────────────────────────────
from spconflict.errors import (
    ConflictConfigurationError,
    ConflictDetectionError,
    ErrorCode,
    FetchFailedError,
    PermissionDeniedError,
    RecordNotFoundError,
)

# ── Models ──────────────────────────────────────────────────────────────
from spconflict.models import (
    Actor,
    ConflictInfo,
    ConflictSeverity,
    DetectionResult,
    DetectionState,
    DetectorStatus,
    PreSaveCheckResult,
    RecordIdentity,
    ResolutionAction,
    VersionStamp,
)

# ── Options ─────────────────────────────────────────────────────────────
from spconflict.options import (
    DEFAULT_OPTIONS,
    DEFAULT_POLLING_INTERVAL_MS,
    MAX_POLLING_INTERVAL_MS,
    MIN_POLLING_INTERVAL_MS,
    ConflictDetectionOptions,
)
from spconflict.presets import PRESETS, get_preset, resolve_options
from spconflict.session import ConflictSession, create_monitor

# ── Backing store ───────────────────────────────────────────────────────
from spconflict.sharepoint import AsyncSharePointTransport, SharePointStampFetcher

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    # Detection
    "ConflictDetector",
    "ConflictSession",
    "ConflictEvents",
    "PollingScheduler",
    "SnapshotStore",
    "StampFetcher",
    "create_monitor",
    "compare",
    "enhance",
    "classify_severity",
    "is_recent",
    "clamp_interval",
    # Options
    "ConflictDetectionOptions",
    "DEFAULT_OPTIONS",
    "DEFAULT_POLLING_INTERVAL_MS",
    "MIN_POLLING_INTERVAL_MS",
    "MAX_POLLING_INTERVAL_MS",
    "PRESETS",
    "get_preset",
    "resolve_options",
    # Backing store
    "SharePointConfig",
    "SharePointStampFetcher",
    "AsyncSharePointTransport",
    # Errors
    "ConflictDetectionError",
    "ConflictConfigurationError",
    "ErrorCode",
    "FetchFailedError",
    "PermissionDeniedError",
    "RecordNotFoundError",
    # Models
    "Actor",
    "ConflictInfo",
    "ConflictSeverity",
    "DetectionResult",
    "DetectionState",
    "DetectorStatus",
    "PreSaveCheckResult",
    "RecordIdentity",
    "ResolutionAction",
    "VersionStamp",
]
