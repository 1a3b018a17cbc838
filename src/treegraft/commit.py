"""Commit construction and optimistic branch updates."""

from __future__ import annotations

import logging
import re

from .exceptions import InvalidInputError, UpstreamError
from .objects import CommitInfo
from .store import ObjectStore

logger = logging.getLogger(__name__)

_SHA_RE = re.compile(r"^[0-9a-fA-F]{7,64}$")


def validate_ref_name(name: str, kind: str = "branch") -> str:
    """Reject names git would not accept as a ref component."""
    if not isinstance(name, str) or not name:
        raise InvalidInputError(f"The {kind} name must not be empty.")
    for ch, label in ((":", "colon"), (" ", "space"), ("\t", "tab"), ("\n", "newline"),
                      ("~", "tilde"), ("^", "caret"), ("?", "question mark"),
                      ("*", "asterisk"), ("[", "bracket"), ("\\", "backslash")):
        if ch in name:
            raise InvalidInputError(f"Invalid {kind} name {name!r}: contains {label}")
    if (
        ".." in name
        or "@{" in name
        or "//" in name
        or name.startswith(("-", "/", "."))
        or name.endswith(("/", ".", ".lock"))
        or any(part.startswith(".") for part in name.split("/"))
    ):
        raise InvalidInputError(f"Invalid {kind} name {name!r}")
    return name


def validate_sha(sha: str) -> str:
    """Accept a full or abbreviated (>= 7 digits) hex object name."""
    if not isinstance(sha, str) or not _SHA_RE.match(sha):
        raise InvalidInputError(f"Invalid commit sha: {sha!r}")
    return sha.lower()


def attribute(message: str, author: str) -> str:
    """Append the author attribution to a commit message."""
    return f"{message} [author: {author}]"


def build_commit(
    store: ObjectStore,
    message: str,
    tree_sha: str,
    parent_sha: str,
    author: str,
) -> CommitInfo:
    """Create a commit of *tree_sha* whose single parent is *parent_sha*.

    Raises:
        UpstreamError: If the store does not report a commit sha.
    """
    commit = store.create_commit(attribute(message, author), tree_sha, [parent_sha])
    if commit is None or not commit.sha:
        raise UpstreamError("Failed to create commit or extract its sha.")
    logger.debug("built commit %s (tree %s, parent %s)", commit.sha, tree_sha, parent_sha)
    return commit


def advance_branch(store: ObjectStore, branch: str, commit_sha: str) -> None:
    """Fast-forward *branch* to *commit_sha*.

    The update is never forced, so it fails with
    :class:`~treegraft.exceptions.StaleBranchError` if another writer moved
    the branch after its head was read.
    """
    store.update_ref(branch, commit_sha, force=False)
    logger.debug("advanced %s to %s", branch, commit_sha)
