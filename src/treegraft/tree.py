"""Path-scoped tree manipulation for treegraft.

Provides path validation, resolution of a directory chain, single-tree
mutations and bottom-up propagation of a new child sha to a new root.
Only the trees on the mutated path are rebuilt; every sibling subtree
and blob is reused by hash reference.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import NamedTuple

from .exceptions import ConflictError, InvalidInputError, NotFoundError, UpstreamError
from .objects import FILEMODE_TREE, EntryType, TreeDiff, TreeEntry
from .store import ObjectStore

logger = logging.getLogger(__name__)


class ResolvedPath(NamedTuple):
    """Directory chain produced by :func:`resolve_path`.

    ``chain[0]`` is the root tree and ``chain[-1]`` the deepest directory;
    ``chain[i + 1]`` is the entry named ``segments[i]`` inside ``chain[i]``.
    """

    chain: list[str]
    segments: list[str]

    @property
    def root(self) -> str:
        return self.chain[0]

    @property
    def target(self) -> str:
        return self.chain[-1]

    @property
    def dirpath(self) -> str:
        return "/".join(self.segments)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def normalize_path(path: str) -> str:
    """Validate a relative repo path and return it without a trailing slash.

    Raises:
        InvalidInputError: For empty paths, a leading ``/``, backslashes,
            or empty, ``.`` or ``..`` segments.
    """
    if not isinstance(path, str) or not path.strip():
        raise InvalidInputError("Path must not be empty.")
    if path.startswith("/"):
        raise InvalidInputError(f"Path must be relative: {path!r}")
    if "\\" in path or "\0" in path:
        raise InvalidInputError(f"Invalid characters in path: {path!r}")
    if path.endswith("/"):
        path = path[:-1]
    segments = path.split("/")
    for seg in segments:
        if not seg:
            raise InvalidInputError(f"Empty segment in path: {path!r}")
        if seg in (".", ".."):
            raise InvalidInputError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


def normalize_dir(path: str | None) -> str:
    """Like :func:`normalize_path`, but ``""`` or ``None`` mean the root."""
    if path is None or path == "":
        return ""
    return normalize_path(path)


def validate_name(name: str) -> str:
    """Validate a single entry name.

    Raises:
        InvalidInputError: If *name* is blank, ``.``/``..``, or contains
            a path separator.
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidInputError("Name must not be empty.")
    if "/" in name or "\\" in name or "\0" in name:
        raise InvalidInputError(f"Invalid characters in name: {name!r}")
    if name in (".", ".."):
        raise InvalidInputError(f"Invalid name: {name!r}")
    return name


def split_path(path: str) -> tuple[list[str], str]:
    """Split a normalized path into (parent segments, final name)."""
    segments = path.split("/")
    return segments[:-1], segments[-1]


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

def _find(entries: list[TreeEntry], name: str) -> TreeEntry | None:
    for entry in entries:
        if entry.path == name:
            return entry
    return None


def resolve_path(store: ObjectStore, root_sha: str, segments: list[str]) -> ResolvedPath:
    """Walk *segments* down from *root_sha*, one tree level per segment.

    Each level is fetched non-recursively, so the cost is proportional to
    the path depth rather than the tree size.

    Raises:
        NotFoundError: If a segment is missing or is not a directory.
    """
    chain = [root_sha]
    current = root_sha
    for i, seg in enumerate(segments):
        entry = _find(store.get_tree(current), seg)
        if entry is None or entry.type is not EntryType.TREE:
            partial = "/".join(segments[: i + 1])
            raise NotFoundError(f"Path not found: could not find directory '{partial}'.")
        current = entry.sha
        chain.append(current)
        logger.debug("resolved %s -> %s", seg, current)
    return ResolvedPath(chain, list(segments))


def find_entry(store: ObjectStore, tree_sha: str, name: str, dirpath: str = "") -> TreeEntry:
    """Return the entry *name* in *tree_sha*.

    Raises:
        NotFoundError: If there is no such entry.
    """
    entry = _find(store.get_tree(tree_sha), name)
    if entry is None:
        raise NotFoundError(f"Item '{name}' not found in directory '{dirpath or '/'}'.")
    return entry


def lookup_entry(store: ObjectStore, root_sha: str, path: str) -> TreeEntry | None:
    """Return the entry at the normalized *path* below *root_sha*, or None."""
    segments, name = split_path(path)
    try:
        resolved = resolve_path(store, root_sha, segments)
    except NotFoundError:
        return None
    return _find(store.get_tree(resolved.target), name)


# ---------------------------------------------------------------------------
# Mutator
# ---------------------------------------------------------------------------

def rename_entry(
    store: ObjectStore,
    parent_sha: str,
    original_name: str,
    new_name: str,
    dirpath: str = "",
) -> str:
    """Rename one entry of a tree and persist the new tree.

    The renamed entry keeps its mode, type and sha, so the content it
    points to is untouched.

    Returns:
        Sha of the new parent tree.

    Raises:
        NotFoundError: If *original_name* is not in the tree.
        ConflictError: If *new_name* already exists in the tree.
    """
    entries = store.get_tree(parent_sha)
    original = _find(entries, original_name)
    if original is None:
        raise NotFoundError(
            f"Item '{original_name}' not found in directory '{dirpath or '/'}'."
        )
    if _find(entries, new_name) is not None:
        raise ConflictError(
            f"An item named '{new_name}' already exists in directory '{dirpath or '/'}'."
        )
    new_entries = [e for e in entries if e.path != original_name]
    new_entries.append(original.renamed(new_name))
    return store.create_tree(new_entries)


def insert_entry(store: ObjectStore, parent_sha: str, entry: TreeEntry, dirpath: str = "") -> str:
    """Add *entry* to a tree and persist the new tree.

    Raises:
        ConflictError: If an entry with the same name already exists.
    """
    entries = store.get_tree(parent_sha)
    if _find(entries, entry.path) is not None:
        raise ConflictError(
            f"An item named '{entry.path}' already exists in directory '{dirpath or '/'}'."
        )
    return store.create_tree([*entries, entry])


def put_entry(store: ObjectStore, parent_sha: str, entry: TreeEntry, dirpath: str = "") -> str:
    """Add *entry* to a tree, replacing a same-named file.

    Raises:
        ConflictError: If the name is taken by a directory.
    """
    entries = store.get_tree(parent_sha)
    existing = _find(entries, entry.path)
    if existing is not None and existing.type is EntryType.TREE:
        raise ConflictError(
            f"'{entry.path}' is a directory in '{dirpath or '/'}' and cannot be overwritten."
        )
    return store.create_tree([*(e for e in entries if e.path != entry.path), entry])


def graft_entries(
    store: ObjectStore,
    tree_sha: str | None,
    entries: dict[str, TreeEntry],
    dirpath: str = "",
) -> str:
    """Place each entry of *entries* (keyed by relative path) below *tree_sha*.

    Same-named files are replaced and missing directories are created.
    Only the directories on the grafted paths are rebuilt. A *tree_sha*
    of None stands for an empty directory.

    Returns:
        Sha of the new tree.

    Raises:
        ConflictError: If a file would replace a directory or a path runs
            through an existing file.
    """
    by_name = {e.path: e for e in store.get_tree(tree_sha)} if tree_sha else {}
    leaves: dict[str, TreeEntry] = {}
    nested: dict[str, dict[str, TreeEntry]] = {}
    for path, entry in entries.items():
        head, sep, rest = path.partition("/")
        if sep:
            nested.setdefault(head, {})[rest] = entry
        else:
            leaves[head] = entry

    for name, entry in leaves.items():
        existing = by_name.get(name)
        if existing is not None and existing.type is EntryType.TREE:
            raise ConflictError(
                f"'{name}' is a directory in '{dirpath or '/'}' and cannot be overwritten."
            )
        by_name[name] = entry.renamed(name)

    for name, sub in nested.items():
        subdir = f"{dirpath}/{name}" if dirpath else name
        existing = by_name.get(name)
        if existing is not None and existing.type is not EntryType.TREE:
            raise ConflictError(f"'{subdir}' is a file, not a directory.")
        child = graft_entries(store, existing.sha if existing else None, sub, subdir)
        by_name[name] = TreeEntry(name, FILEMODE_TREE, EntryType.TREE, child)
        logger.debug("grafted %s -> %s", subdir, child)

    return store.create_tree(list(by_name.values()))


# ---------------------------------------------------------------------------
# Propagator
# ---------------------------------------------------------------------------

def propagate(store: ObjectStore, resolved: ResolvedPath, new_child_sha: str) -> str:
    """Rebuild every ancestor on *resolved* bottom-up around *new_child_sha*.

    *new_child_sha* replaces ``resolved.target``. At each level the entry
    whose name is the walked segment and whose sha is the pre-mutation
    child is repointed; all other entries are carried over unchanged.

    Returns:
        Sha of the new root tree (``new_child_sha`` itself for depth 0).
    """
    new_sha = new_child_sha
    for i in range(len(resolved.segments) - 1, -1, -1):
        tree_sha = resolved.chain[i]
        old_child = resolved.chain[i + 1]
        seg = resolved.segments[i]
        entries = store.get_tree(tree_sha)
        replaced = False
        new_entries = []
        for entry in entries:
            if entry.path == seg and entry.type is EntryType.TREE and entry.sha == old_child:
                new_entries.append(entry.repointed(new_sha))
                replaced = True
            else:
                new_entries.append(entry)
        if not replaced:
            raise UpstreamError(
                f"Tree {tree_sha} no longer contains directory '{seg}' at {old_child}."
            )
        new_sha = store.create_tree(new_entries)
        logger.debug("propagated %s: %s -> %s", seg or "/", tree_sha, new_sha)
    return new_sha


# ---------------------------------------------------------------------------
# Read helpers
# ---------------------------------------------------------------------------

def walk_blobs(store: ObjectStore, tree_sha: str, prefix: str = "") -> Iterator[str]:
    """Yield the full path of every non-tree entry below *tree_sha*."""
    for entry in store.get_tree(tree_sha):
        path = f"{prefix}/{entry.path}" if prefix else entry.path
        if entry.type is EntryType.TREE:
            yield from walk_blobs(store, entry.sha, path)
        else:
            yield path


def _diff_into(store: ObjectStore, base_sha: str, head_sha: str, prefix: str, diff: TreeDiff) -> None:
    base = {e.path: e for e in store.get_tree(base_sha)}
    head = {e.path: e for e in store.get_tree(head_sha)}
    for name in sorted(base.keys() | head.keys()):
        path = f"{prefix}/{name}" if prefix else name
        b = base.get(name)
        h = head.get(name)
        if b is not None and h is not None and b.sha == h.sha and b.mode == h.mode:
            continue
        b_tree = b is not None and b.type is EntryType.TREE
        h_tree = h is not None and h.type is EntryType.TREE
        if b_tree and h_tree:
            _diff_into(store, b.sha, h.sha, path, diff)
            continue
        if b is not None and h is not None and not b_tree and not h_tree:
            diff.modified.append(path)
            continue
        if b is not None:
            if b_tree:
                diff.removed.extend(walk_blobs(store, b.sha, path))
            else:
                diff.removed.append(path)
        if h is not None:
            if h_tree:
                diff.added.extend(walk_blobs(store, h.sha, path))
            else:
                diff.added.append(path)


def diff_trees(store: ObjectStore, base_sha: str, head_sha: str) -> TreeDiff:
    """Compare two root trees, descending only into subtrees that differ."""
    diff = TreeDiff()
    if base_sha != head_sha:
        _diff_into(store, base_sha, head_sha, "", diff)
    diff.added.sort()
    diff.removed.sort()
    diff.modified.sort()
    return diff
