"""Error hierarchy for spconflict.

Every public error class inherits from ConflictDetectionError. Each carries
a machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

Error codes are defined as a :class:`str` enum so that they serialise
naturally to JSON and can be matched with simple ``==`` comparisons.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error spconflict can report."""

    FETCH_FAILED = "FETCH_FAILED"
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    GENERAL_ERROR = "GENERAL_ERROR"
    INVALID_LIST_ID = "INVALID_LIST_ID"
    INVALID_ITEM_ID = "INVALID_ITEM_ID"
    INVALID_FETCHER = "INVALID_FETCHER"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    DETECTOR_DISPOSED = "DETECTOR_DISPOSED"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class ConflictDetectionError(Exception):
    """Base exception for all spconflict errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str = ErrorCode.GENERAL_ERROR,
        message: str = "Conflict detection error",
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Fetch errors
# ---------------------------------------------------------------------------

class FetchFailedError(ConflictDetectionError):
    """The backing store could not be reached or returned an unusable reply.

    Context keys: ``list_id``, ``item_id``, ``status_code``, ``attempts``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.FETCH_FAILED,
            message=message,
            context=context,
            cause=cause,
        )


class RecordNotFoundError(ConflictDetectionError):
    """The record no longer exists (deleted between snapshot and check).

    Context keys: ``list_id``, ``item_id``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=message,
            context=context,
            cause=cause,
        )


class PermissionDeniedError(ConflictDetectionError):
    """The caller lacks read access to the record (401/403).

    Context keys: ``list_id``, ``item_id``, ``status_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.PERMISSION_DENIED,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Construction errors
# ---------------------------------------------------------------------------

class ConflictConfigurationError(ConflictDetectionError):
    """A detector was constructed with an invalid record identity or fetcher.

    Raised at construction time; there is no partially built detector to
    hand back.

    Context keys: ``list_id``, ``item_id``.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, context=context)
