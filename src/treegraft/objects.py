"""Content-addressed object model: tree entries, commits and tags."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

FILEMODE_TREE = "040000"
FILEMODE_BLOB = "100644"
FILEMODE_BLOB_EXECUTABLE = "100755"
FILEMODE_LINK = "120000"
FILEMODE_COMMIT = "160000"


class EntryType(str, Enum):
    """Kind of object a :class:`TreeEntry` points to.

    Members: ``BLOB``, ``TREE``, ``COMMIT`` (submodule gitlink).
    """
    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"

    def __str__(self) -> str:          # noqa: D105
        return self.value

    @classmethod
    def from_filemode(cls, mode: str) -> EntryType:
        """Return the entry type implied by a git filemode string."""
        if mode.lstrip("0") == FILEMODE_TREE.lstrip("0"):
            return cls.TREE
        if mode == FILEMODE_COMMIT:
            return cls.COMMIT
        return cls.BLOB


def normalize_filemode(mode: str | int) -> str:
    """Return *mode* as a six-digit octal string (``0o40000`` → ``"040000"``)."""
    if isinstance(mode, int):
        return f"{mode:06o}"
    return mode.zfill(6)


@dataclass(frozen=True, slots=True)
class TreeEntry:
    """One named entry of a tree.

    Attributes:
        path: Entry name within its tree (a single path segment).
        mode: Git filemode as an octal string (e.g. ``"100644"``).
        type: :class:`EntryType` of the referenced object.
        sha: Content hash of the referenced object.
    """

    path: str
    mode: str
    type: EntryType
    sha: str

    def renamed(self, name: str) -> TreeEntry:
        """Return a copy under *name* pointing at the same object."""
        return TreeEntry(name, self.mode, self.type, self.sha)

    def repointed(self, sha: str) -> TreeEntry:
        """Return a copy under the same name pointing at *sha*."""
        return TreeEntry(self.path, self.mode, self.type, sha)

    def to_dict(self) -> dict:
        return {"path": self.path, "mode": self.mode, "type": self.type.value, "sha": self.sha}


@dataclass(frozen=True, slots=True)
class CommitInfo:
    """An immutable commit as reported by the store.

    Attributes:
        sha: Commit hash.
        tree_sha: Root tree hash.
        parents: Parent commit hashes.
        message: Full commit message.
        author: Author identity string.
        timestamp: Commit time as POSIX epoch seconds.
    """

    sha: str
    tree_sha: str
    parents: tuple[str, ...] = ()
    message: str = ""
    author: str = ""
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {
            "sha": self.sha,
            "tree": self.tree_sha,
            "parents": list(self.parents),
            "message": self.message,
            "author": self.author,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class TagRef:
    """A tag name and the commit it points at."""

    name: str
    target_sha: str


@dataclass
class TreeDiff:
    """Blob-level differences between two root trees.

    Attributes:
        added: Paths present only in the head tree.
        removed: Paths present only in the base tree.
        modified: Paths present in both with different content or mode.
    """

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)

    @property
    def identical(self) -> bool:
        """``True`` if both trees have the same content."""
        return not self.added and not self.removed and not self.modified

    def to_dict(self) -> dict:
        return {"added": self.added, "removed": self.removed, "modified": self.modified}
