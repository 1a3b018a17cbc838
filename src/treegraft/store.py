"""ObjectStore: the primitive operations the engine consumes.

Backends map each call to one request against a content-addressed object
store and translate backend failures into :mod:`treegraft.exceptions`.
They hold no logic beyond that mapping.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from .objects import CommitInfo, TagRef, TreeEntry


class ObjectStore(ABC):
    """Abstract object store client.

    All methods may raise :class:`~treegraft.exceptions.UpstreamError` for
    transport failures and timeouts.
    """

    @abstractmethod
    def get_tree(self, tree_sha: str) -> list[TreeEntry]:
        """Return the entries of one tree level (non-recursive).

        Raises:
            NotFoundError: If no tree has *tree_sha*.
        """

    @abstractmethod
    def get_branch_head_sha(self, branch: str) -> str:
        """Return the commit sha *branch* points at.

        Raises:
            NotFoundError: If the branch does not exist.
        """

    @abstractmethod
    def get_commit(self, commit_sha: str) -> CommitInfo:
        """Return the commit with *commit_sha*.

        Raises:
            NotFoundError: If no commit matches.
        """

    def get_commit_tree_sha(self, commit_sha: str) -> str:
        """Return the root tree sha of a commit."""
        return self.get_commit(commit_sha).tree_sha

    @abstractmethod
    def create_blob(self, data: bytes) -> str:
        """Persist *data* as a blob and return its sha."""

    @abstractmethod
    def create_tree(self, entries: Sequence[TreeEntry]) -> str:
        """Persist a tree built from *entries* and return its sha."""

    @abstractmethod
    def create_commit(self, message: str, tree_sha: str, parents: Sequence[str]) -> CommitInfo:
        """Persist a commit object. Does not move any ref."""

    @abstractmethod
    def update_ref(self, branch: str, new_sha: str, force: bool = False) -> None:
        """Move *branch* to *new_sha*.

        Without *force*, the move is accepted only as a fast-forward of the
        branch's current target.

        Raises:
            NotFoundError: If the branch does not exist.
            StaleBranchError: If the update is not a fast-forward.
        """

    @abstractmethod
    def create_branch_ref(self, branch: str, target_sha: str) -> None:
        """Create a new branch ref.

        Raises:
            ConflictError: If the branch already exists.
        """

    @abstractmethod
    def delete_branch_ref(self, branch: str, expected_sha: str | None = None) -> None:
        """Delete a branch ref.

        With *expected_sha*, the branch is deleted only while it still
        points there.

        Raises:
            NotFoundError: If the branch does not exist.
            StaleBranchError: If the branch no longer points at *expected_sha*.
        """

    @abstractmethod
    def list_tags(self) -> list[TagRef]:
        """Return every tag with the commit it points at."""

    @abstractmethod
    def create_tag_ref(self, name: str, target_sha: str) -> None:
        """Create a lightweight tag ref.

        Raises:
            ConflictError: If a tag named *name* already exists.
        """
