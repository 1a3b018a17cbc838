from .engine import TreeEngine, OperationResult, OperationState, retry_operation
from .exceptions import (
    ErrorKind, TreegraftError, InvalidInputError, NotFoundError,
    ConflictError, StaleBranchError, PermissionDeniedError, UpstreamError, TaggingError,
)
from .objects import EntryType, TreeEntry, CommitInfo, TagRef, TreeDiff
from .store import ObjectStore
from .local import LocalObjectStore
from .github import GitHubObjectStore
from .policy import AccessDecision, Authorizer, ProtectedBranchAuthorizer
from .config import Settings, open_store

__all__ = [
    "TreeEngine", "OperationResult", "OperationState", "retry_operation",
    "ErrorKind", "TreegraftError", "InvalidInputError", "NotFoundError",
    "ConflictError", "StaleBranchError", "PermissionDeniedError", "UpstreamError",
    "TaggingError",
    "EntryType", "TreeEntry", "CommitInfo", "TagRef", "TreeDiff",
    "ObjectStore", "LocalObjectStore", "GitHubObjectStore",
    "AccessDecision", "Authorizer", "ProtectedBranchAuthorizer",
    "Settings", "open_store",
]
