"""Exceptions for treegraft.

Every failure raised by the engine is a :class:`TreegraftError` carrying an
:class:`ErrorKind`, so request handlers can map errors to responses without
inspecting exception types.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    PERMISSION_DENIED = "permission_denied"
    UPSTREAM_FAILURE = "upstream_failure"
    TAGGING_FAILURE = "tagging_failure"

    def __str__(self) -> str:          # noqa: D105
        return self.value


class TreegraftError(Exception):
    """Base class for all treegraft errors.

    Attributes:
        message: User-facing description of the failure.
    """

    kind: ErrorKind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.kind.value, "message": self.message}


class InvalidInputError(TreegraftError, ValueError):
    """Malformed path, name, branch or sha; raised before any store call."""

    kind = ErrorKind.INVALID_INPUT


class NotFoundError(TreegraftError, LookupError):
    """A branch, commit, path segment or entry does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(TreegraftError):
    """A name collision, or a ref that cannot be moved as requested."""

    kind = ErrorKind.CONFLICT


class StaleBranchError(ConflictError):
    """Raised when a branch has moved since its head was read.

    Re-read the head and redo the whole operation, or use
    :func:`~treegraft.retry_operation` for automatic retry with backoff.
    """


class PermissionDeniedError(TreegraftError):
    """The actor may not write to the branch (see :mod:`treegraft.policy`)."""

    kind = ErrorKind.PERMISSION_DENIED


class UpstreamError(TreegraftError):
    """The object store failed, timed out or returned an unusable response."""

    kind = ErrorKind.UPSTREAM_FAILURE


class TaggingError(TreegraftError):
    """Auto-tagging failed; never fatal to the operation that triggered it."""

    kind = ErrorKind.TAGGING_FAILURE
