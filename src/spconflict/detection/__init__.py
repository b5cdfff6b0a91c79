"""Conflict detection core.

Exports
-------
ConflictDetector
    State machine that fetches, compares and tracks conflicts for one record.
PollingScheduler
    Cooperative timer with pause/resume and a busy guard.
SnapshotStore
    Holder for the baseline version stamp.
ConflictEvents
    Observer channel for detected/resolved transitions.
StampFetcher
    Protocol for reading a record's current version stamp.
compare
    Decide whether a remote stamp diverged from the baseline.
"""

from .comparator import classify_severity, compare, enhance, is_recent
from .detector import ConflictDetector
from .events import ConflictEvents
from .fetcher import StampFetcher
from .scheduler import PollingScheduler, clamp_interval
from .snapshot import SnapshotStore

__all__ = [
    "ConflictDetector",
    "ConflictEvents",
    "PollingScheduler",
    "SnapshotStore",
    "StampFetcher",
    "clamp_interval",
    "classify_severity",
    "compare",
    "enhance",
    "is_recent",
]
