"""TreeEngine: atomic structural edits of a branch's tree.

Each operation is a strictly sequential pipeline::

    Resolving -> Mutating -> Propagating -> Committing -> UpdatingRef -> Tagging -> Done

Every step either returns the value the next step needs or raises a
:class:`~treegraft.exceptions.TreegraftError`, which aborts the pipeline.
The non-forced ref update is the only step visible to other readers, so
an aborted operation leaves nothing behind but unreferenced objects.
Tagging runs after the ref update and can only downgrade the outcome to
``DONE_WITH_TAG_ERROR``.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from .commit import advance_branch, build_commit, validate_ref_name, validate_sha
from .exceptions import ErrorKind, InvalidInputError, NotFoundError, StaleBranchError, TreegraftError
from .objects import FILEMODE_BLOB, CommitInfo, EntryType, TreeDiff, TreeEntry
from .store import ObjectStore
from .tree import (
    diff_trees,
    find_entry,
    graft_entries,
    insert_entry,
    lookup_entry,
    normalize_dir,
    normalize_path,
    propagate,
    put_entry,
    rename_entry,
    resolve_path,
    split_path,
    validate_name,
)
from .versioning import DEFAULT_PREFIX, TagOutcome, auto_tag

__all__ = ["TreeEngine", "OperationResult", "OperationState", "retry_operation"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETIRED_SUFFIX = "-retired"


class OperationState(str, Enum):
    """States of the per-operation state machine."""
    RESOLVING = "resolving"
    MUTATING = "mutating"
    PROPAGATING = "propagating"
    COMMITTING = "committing"
    UPDATING_REF = "updating_ref"
    TAGGING = "tagging"
    DONE = "done"
    DONE_WITH_TAG_ERROR = "done_with_tag_error"
    FAILED = "failed"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass
class OperationResult:
    """Outcome of a successful (possibly partially successful) operation.

    Attributes:
        operation: Operation name (``"rename"``, ``"revert"``, ...).
        branch: Branch that was moved or created.
        commit: The commit the branch now points at.
        message: Human-readable summary.
        tag_name: Tag created for the commit, if tagging succeeded.
        tag_error: Why tagging failed, if it did.
        skipped: Requested paths the operation left out (copy-files only).
        states: Every state the operation passed through, in order.
    """

    operation: str
    branch: str
    commit: CommitInfo
    message: str = ""
    tag_name: str | None = None
    tag_error: str | None = None
    skipped: list[str] = field(default_factory=list)
    states: list[OperationState] = field(default_factory=list)

    @property
    def state(self) -> OperationState:
        return self.states[-1] if self.states else OperationState.DONE

    @property
    def partial(self) -> bool:
        """``True`` if the primary change applied but tagging failed."""
        return self.tag_error is not None

    def to_dict(self) -> dict:
        result = {
            "success": True,
            "message": self.message,
            "commit": self.commit.to_dict(),
        }
        if self.tag_name is not None:
            result["tag"] = self.tag_name
        if self.tag_error is not None:
            result["tagError"] = self.tag_error
        if self.skipped:
            result["skipped"] = list(self.skipped)
        return result


class _Run:
    """Records one operation's path through :class:`OperationState`."""

    def __init__(self, operation: str, branch: str):
        self.operation = operation
        self.branch = branch
        self.states: list[OperationState] = []
        self.failure: ErrorKind | None = None

    def enter(self, state: OperationState) -> None:
        logger.debug("%s %s: %s", self.operation, self.branch, state)
        self.states.append(state)

    def __enter__(self) -> _Run:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if isinstance(exc, TreegraftError):
            self.failure = exc.kind
            self.states.append(OperationState.FAILED)
            logger.info("%s on %s failed (%s): %s", self.operation, self.branch, exc.kind, exc.message)
        return False


def _require_author(author: str) -> str:
    if not isinstance(author, str) or not author.strip():
        raise InvalidInputError("Author must not be empty.")
    return author


class TreeEngine:
    """Runs tree edits and branch operations against a store.

    Args:
        store: The :class:`~treegraft.store.ObjectStore` to operate on.
        tagging: Auto-tag every new commit (default True).
        tag_prefix: Prefix for a seeded first tag (default ``"v"``).
    """

    def __init__(self, store: ObjectStore, *, tagging: bool = True, tag_prefix: str = DEFAULT_PREFIX):
        self._store = store
        self._tagging = tagging
        self._tag_prefix = tag_prefix

    def __repr__(self) -> str:
        return f"TreeEngine({self._store!r})"

    @property
    def store(self) -> ObjectStore:
        return self._store

    # --- Shared pipeline tail ---

    def _tag(self, run: _Run, commit_sha: str) -> TagOutcome | None:
        if not self._tagging:
            return None
        run.enter(OperationState.TAGGING)
        return auto_tag(self._store, commit_sha, self._tag_prefix)

    def _finish(self, run: _Run, commit: CommitInfo, summary: str) -> OperationResult:
        outcome = self._tag(run, commit.sha)
        result = OperationResult(run.operation, run.branch, commit, states=run.states)
        if outcome is None:
            result.message = summary
            run.enter(OperationState.DONE)
        elif outcome.ok:
            result.tag_name = outcome.name
            result.message = f"{summary} New state tagged as {outcome.name}."
            run.enter(OperationState.DONE)
        else:
            result.tag_error = outcome.error
            result.message = f"{summary} Failed to apply patch tag. Reason: {outcome.error}"
            run.enter(OperationState.DONE_WITH_TAG_ERROR)
        logger.info("%s on %s -> %s%s", run.operation, run.branch, commit.sha,
                    f" ({result.tag_name})" if result.tag_name else "")
        return result

    def _commit_and_advance(
        self, run: _Run, head: str, new_root: str, message: str, author: str, summary: str,
    ) -> OperationResult:
        run.enter(OperationState.COMMITTING)
        commit = build_commit(self._store, message, new_root, head, author)
        run.enter(OperationState.UPDATING_REF)
        advance_branch(self._store, run.branch, commit.sha)
        return self._finish(run, commit, summary)

    # --- Operations ---

    def rename_item(self, branch: str, original_path: str, new_name: str, author: str) -> OperationResult:
        """Rename the file or directory at *original_path* to *new_name*.

        The entry keeps its sha; only the parent directory and its
        ancestors are rebuilt.

        Args:
            branch: Branch to commit to.
            original_path: Slash-separated path of the entry to rename.
            new_name: New name within the same directory.
            author: Actor id appended to the commit message.

        Returns:
            An :class:`OperationResult`.

        Raises:
            InvalidInputError: Malformed path, name or branch.
            NotFoundError: Missing branch, directory or entry.
            ConflictError: *new_name* already exists in the directory.
            StaleBranchError: The branch moved while the operation ran.
            UpstreamError: The store failed.
        """
        validate_ref_name(branch)
        original_path = normalize_path(original_path)
        validate_name(new_name)
        _require_author(author)
        parent_segments, original_name = split_path(original_path)
        if original_name == new_name:
            raise InvalidInputError("New name cannot be the same as the original name.")
        parent_path = "/".join(parent_segments)
        new_path = f"{parent_path}/{new_name}" if parent_path else new_name
        store = self._store

        with _Run("rename", branch) as run:
            run.enter(OperationState.RESOLVING)
            head = store.get_branch_head_sha(branch)
            root = store.get_commit_tree_sha(head)
            resolved = resolve_path(store, root, parent_segments)

            run.enter(OperationState.MUTATING)
            new_parent = rename_entry(store, resolved.target, original_name, new_name, resolved.dirpath)

            run.enter(OperationState.PROPAGATING)
            new_root = propagate(store, resolved, new_parent)
            if new_root == root:
                logger.warning("rename %s -> %s left root tree %s unchanged", original_path, new_path, root)

            return self._commit_and_advance(
                run, head, new_root,
                f"Rename {original_path} to {new_path}", author,
                f"Item renamed to '{new_path}' successfully.",
            )

    def revert_branch(
        self,
        branch: str,
        target_commit_sha: str,
        author: str,
        message: str | None = None,
    ) -> OperationResult:
        """Commit the tree of *target_commit_sha* on top of *branch*.

        History is preserved: the new commit's parent is the current head,
        and its tree is the target commit's root tree reused wholesale.

        Raises:
            InvalidInputError: Malformed branch or sha.
            NotFoundError: Missing branch or commit.
            StaleBranchError: The branch moved while the operation ran.
            UpstreamError: The store failed.
        """
        validate_ref_name(branch)
        target_commit_sha = validate_sha(target_commit_sha)
        _require_author(author)
        short = target_commit_sha[:7]
        message = message or f"Revert branch '{branch}' to state of commit {short}"
        store = self._store

        with _Run("revert", branch) as run:
            run.enter(OperationState.RESOLVING)
            source_tree = store.get_commit_tree_sha(target_commit_sha)
            head = store.get_branch_head_sha(branch)

            return self._commit_and_advance(
                run, head, source_tree, message, author,
                f"Branch '{branch}' reverted to state of commit {short}.",
            )

    def copy_item(
        self,
        branch: str,
        source_path: str,
        dest_dir: str,
        author: str,
        new_name: str | None = None,
    ) -> OperationResult:
        """Copy the entry at *source_path* into directory *dest_dir*.

        The copy shares the source's sha. *dest_dir* ``""`` is the root.

        Raises:
            InvalidInputError: Malformed paths, name or branch.
            NotFoundError: Missing branch, source or destination directory.
            ConflictError: The destination name already exists.
            StaleBranchError: The branch moved while the operation ran.
            UpstreamError: The store failed.
        """
        validate_ref_name(branch)
        source_path = normalize_path(source_path)
        dest_dir = normalize_dir(dest_dir)
        _require_author(author)
        source_segments, source_name = split_path(source_path)
        name = validate_name(new_name if new_name is not None else source_name)
        dest_path = f"{dest_dir}/{name}" if dest_dir else name
        if dest_path == source_path:
            raise InvalidInputError("Destination cannot be the same as the source.")
        dest_segments = dest_dir.split("/") if dest_dir else []
        store = self._store

        with _Run("copy", branch) as run:
            run.enter(OperationState.RESOLVING)
            head = store.get_branch_head_sha(branch)
            root = store.get_commit_tree_sha(head)
            source_parent = resolve_path(store, root, source_segments)
            entry = find_entry(store, source_parent.target, source_name, source_parent.dirpath)
            dest = resolve_path(store, root, dest_segments)

            run.enter(OperationState.MUTATING)
            new_dest = insert_entry(store, dest.target, entry.renamed(name), dest.dirpath)

            run.enter(OperationState.PROPAGATING)
            new_root = propagate(store, dest, new_dest)

            return self._commit_and_advance(
                run, head, new_root,
                f"Copy {source_path} to {dest_path}", author,
                f"Item copied to '{dest_path}' successfully.",
            )

    def create_branch(self, new_branch: str, source_branch: str, author: str) -> OperationResult:
        """Create *new_branch* at the head of *source_branch* and tag it.

        Raises:
            InvalidInputError: Malformed branch names.
            NotFoundError: The source branch does not exist.
            ConflictError: *new_branch* already exists.
            UpstreamError: The store failed.
        """
        validate_ref_name(new_branch)
        validate_ref_name(source_branch)
        _require_author(author)
        store = self._store

        with _Run("create-branch", new_branch) as run:
            run.enter(OperationState.RESOLVING)
            head = store.get_branch_head_sha(source_branch)
            commit = store.get_commit(head)

            run.enter(OperationState.UPDATING_REF)
            store.create_branch_ref(new_branch, head)
            logger.debug("created branch %s at %s for %s", new_branch, head, author)

            return self._finish(
                run, commit,
                f"Branch '{new_branch}' created from '{source_branch}'.",
            )

    def copy_files(
        self,
        source_branch: str,
        target_branch: str,
        paths: Sequence[str],
        author: str,
    ) -> OperationResult:
        """Copy files from *source_branch* to the same paths on *target_branch*.

        Files already on the target are overwritten and missing directories
        are created. Paths that are missing on the source, or that name a
        directory there, are skipped and listed in ``result.skipped``.

        Raises:
            InvalidInputError: Malformed branches or paths, no paths, or
                identical source and target.
            NotFoundError: A missing branch, or no path names a file on
                the source.
            ConflictError: A copied file would replace a directory.
            StaleBranchError: The target moved while the operation ran.
            UpstreamError: The store failed.
        """
        validate_ref_name(source_branch)
        validate_ref_name(target_branch)
        if source_branch == target_branch:
            raise InvalidInputError("Source and target branches must differ.")
        normalized = list(dict.fromkeys(normalize_path(p) for p in paths))
        if not normalized:
            raise InvalidInputError("No paths given to copy.")
        _require_author(author)
        store = self._store

        with _Run("copy-files", target_branch) as run:
            run.enter(OperationState.RESOLVING)
            source_root = store.get_commit_tree_sha(store.get_branch_head_sha(source_branch))
            head = store.get_branch_head_sha(target_branch)
            root = store.get_commit_tree_sha(head)
            found: dict[str, TreeEntry] = {}
            skipped: list[str] = []
            for path in normalized:
                entry = lookup_entry(store, source_root, path)
                if entry is None or entry.type is not EntryType.BLOB:
                    skipped.append(path)
                else:
                    found[path] = entry
            if not found:
                raise NotFoundError("No eligible files found to copy.")
            if skipped:
                logger.info("copy-files skipping %s", ", ".join(skipped))

            run.enter(OperationState.MUTATING)
            new_root = graft_entries(store, root, found)

            count = len(found)
            summary = f"Copied {count} file(s) from '{source_branch}' to '{target_branch}'."
            if skipped:
                summary += f" Skipped {len(skipped)} path(s) not found as files."
            result = self._commit_and_advance(
                run, head, new_root,
                f"Copy {count} file(s) from {source_branch}", author, summary,
            )
            result.skipped = skipped
            return result

    def write_file(
        self,
        branch: str,
        path: str,
        data: bytes,
        author: str,
        message: str | None = None,
    ) -> OperationResult:
        """Commit *data* as the file at *path*, adding or replacing it.

        The parent directory must exist. A replaced file keeps its mode.

        Raises:
            InvalidInputError: Malformed branch or path, or non-bytes data.
            NotFoundError: Missing branch or parent directory.
            ConflictError: *path* is a directory.
            StaleBranchError: The branch moved while the operation ran.
            UpstreamError: The store failed.
        """
        validate_ref_name(branch)
        path = normalize_path(path)
        _require_author(author)
        if not isinstance(data, bytes):
            raise InvalidInputError("File content must be bytes.")
        parent_segments, name = split_path(path)
        store = self._store

        with _Run("write", branch) as run:
            run.enter(OperationState.RESOLVING)
            head = store.get_branch_head_sha(branch)
            root = store.get_commit_tree_sha(head)
            resolved = resolve_path(store, root, parent_segments)
            existing = lookup_entry(store, resolved.target, name)
            replacing = existing is not None and existing.type is EntryType.BLOB

            run.enter(OperationState.MUTATING)
            mode = existing.mode if replacing else FILEMODE_BLOB
            blob = TreeEntry(name, mode, EntryType.BLOB, store.create_blob(data))
            new_parent = put_entry(store, resolved.target, blob, resolved.dirpath)

            run.enter(OperationState.PROPAGATING)
            new_root = propagate(store, resolved, new_parent)

            verb = "updated" if replacing else "added"
            default = f"Update file: {path}" if replacing else f"Add new file: {path}"
            return self._commit_and_advance(
                run, head, new_root, message or default, author,
                f"File '{path}' {verb} successfully.",
            )

    def retire_branch(self, branch: str, author: str) -> OperationResult:
        """Rename *branch* to ``<branch>-retired``.

        The retired ref is created at the head before the original is
        deleted. If the branch moves in between, the retired ref is removed
        again. No tag is created.

        Raises:
            InvalidInputError: Malformed branch, or a branch that is
                already retired.
            NotFoundError: The branch does not exist.
            ConflictError: ``<branch>-retired`` already exists.
            StaleBranchError: The branch moved while the operation ran.
            UpstreamError: The store failed.
        """
        validate_ref_name(branch)
        _require_author(author)
        if branch.endswith(RETIRED_SUFFIX):
            raise InvalidInputError(f"Branch '{branch}' is already retired.")
        retired = f"{branch}{RETIRED_SUFFIX}"
        store = self._store

        with _Run("retire-branch", branch) as run:
            run.enter(OperationState.RESOLVING)
            head = store.get_branch_head_sha(branch)
            commit = store.get_commit(head)

            run.enter(OperationState.UPDATING_REF)
            store.create_branch_ref(retired, head)
            try:
                store.delete_branch_ref(branch, head)
            except TreegraftError:
                store.delete_branch_ref(retired, head)
                raise
            run.enter(OperationState.DONE)
            logger.info("retire-branch %s -> %s at %s for %s", branch, retired, head, author)
            return OperationResult(
                "retire-branch", retired, commit,
                message=f"Branch '{branch}' retired successfully as '{retired}'.",
                states=run.states,
            )

    def compare_branches(self, base: str, head: str) -> TreeDiff:
        """Return the blob-level differences from *base* to *head*.

        The two branches are looked up concurrently; neither is modified.
        """
        validate_ref_name(base)
        validate_ref_name(head)
        store = self._store

        def root_of(branch: str) -> str:
            return store.get_commit_tree_sha(store.get_branch_head_sha(branch))

        with ThreadPoolExecutor(max_workers=2) as pool:
            base_future = pool.submit(root_of, base)
            head_future = pool.submit(root_of, head)
            base_root = base_future.result()
            head_root = head_future.result()
        return diff_trees(store, base_root, head_root)


def retry_operation(operation: Callable[[], T], *, retries: int = 5) -> T:
    """Run *operation*, re-running it from scratch when the branch moved.

    *operation* must re-read the branch head on every call (all
    :class:`TreeEngine` operations do). Uses exponential backoff with
    jitter (base 10ms, factor 2x, cap 200ms).

    Raises ``StaleBranchError`` if all attempts are exhausted.
    """
    for attempt in range(retries):
        try:
            return operation()
        except StaleBranchError:
            if attempt == retries - 1:
                raise
            delay = min(0.01 * (2 ** attempt), 0.2)
            logger.debug("branch moved; retrying in up to %.3fs (attempt %d)", delay, attempt + 2)
            time.sleep(random.uniform(0, delay))
    raise ValueError(f"retries must be >= 1, got {retries}")
