"""LocalObjectStore: an ObjectStore backed by a dulwich bare repository.

Objects are real git objects, so every sha is the git content hash.
Ref moves are compare-and-swap updates through dulwich's
``set_if_equals``; no lock is held across an operation.
"""

from __future__ import annotations

import logging
import re
import time as _time
from collections import deque
from collections.abc import Sequence
from pathlib import Path

from dulwich.errors import NotGitRepository
from dulwich.objects import Blob as _DBlob
from dulwich.objects import Commit as _DCommit
from dulwich.objects import Tag as _DTag
from dulwich.objects import Tree as _DTree
from dulwich.repo import Repo as _DRepo

from .exceptions import ConflictError, InvalidInputError, NotFoundError, StaleBranchError
from .objects import CommitInfo, EntryType, TagRef, TreeEntry, normalize_filemode
from .store import ObjectStore

logger = logging.getLogger(__name__)

_HEADS = b"refs/heads/"
_TAGS = b"refs/tags/"
_SHA_RE = re.compile(r"^[0-9a-f]{40}$")


class LocalObjectStore(ObjectStore):
    """Object store over a bare git repository on disk."""

    def __init__(self, repo: _DRepo, author: str = "treegraft", email: str = "treegraft@localhost"):
        self._repo = repo
        self._identity = f"{author} <{email}>".encode()

    def __repr__(self) -> str:
        return f"LocalObjectStore({self._repo.path!r})"

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        create: bool = True,
        branch: str | None = "main",
        author: str = "treegraft",
        email: str = "treegraft@localhost",
    ) -> LocalObjectStore:
        """Open or create a bare git repository.

        Args:
            path: Path to the bare repository.
            create: If True (default), create the repo when it doesn't exist.
                    If False, raise NotFoundError when missing.
            branch: Initial branch name when creating (default "main").
                    None to create a bare repo with no branches.
            author: Identity used for commits and reflog entries.
            email: Email used for commits and reflog entries.
        """
        path = Path(path)

        if path.exists():
            try:
                return cls(_DRepo(str(path)), author, email)
            except NotGitRepository:
                raise NotFoundError(f"Not a git repository: {path}")

        if not create:
            raise NotFoundError(f"Repository not found: {path}")

        repo = _DRepo.init_bare(str(path), mkdir=True)
        store = cls(repo, author, email)

        if branch is not None:
            tree_sha = store.create_tree([])
            commit = store.create_commit(f"Initialize {branch}", tree_sha, [])
            ref = _HEADS + branch.encode()
            repo.refs.add_if_new(ref, commit.sha.encode(), committer=store._identity,
                                 message=f"branch: Created {branch}".encode())
            repo.refs.set_symbolic_ref(b"HEAD", ref)

        return store

    def close(self) -> None:
        self._repo.close()

    @property
    def path(self) -> str:
        return self._repo.path

    # --- Object access ---

    def _get(self, sha: str):
        if not _SHA_RE.match(sha):
            raise NotFoundError(f"Object '{sha}' not found.")
        try:
            return self._repo.object_store[sha.encode()]
        except KeyError:
            raise NotFoundError(f"Object '{sha}' not found.")

    def _peel(self, obj):
        """Follow annotated tags until a non-tag object is reached."""
        for _ in range(50):  # safety limit
            if not isinstance(obj, _DTag):
                return obj
            obj = self._repo.object_store[obj.object[1]]
        return obj

    def _resolve_sha(self, sha: str) -> str:
        """Expand an abbreviated sha by prefix scan."""
        if len(sha) >= 40:
            return sha.lower()
        prefix = sha.lower().encode()
        matches = [s for s in self._repo.object_store if s.startswith(prefix)]
        commits = [s for s in matches if isinstance(self._repo.object_store[s], _DCommit)]
        if len(commits) != 1:
            raise NotFoundError(f"Commit '{sha}' not found.")
        return commits[0].decode()

    def _contains(self, sha: str) -> bool:
        return bool(_SHA_RE.match(sha)) and sha.encode() in self._repo.object_store

    def get_tree(self, tree_sha: str) -> list[TreeEntry]:
        logger.debug("get_tree %s", tree_sha)
        obj = self._get(tree_sha)
        if not isinstance(obj, _DTree):
            raise NotFoundError(f"Tree '{tree_sha}' not found.")
        entries = []
        for entry in obj.iteritems():
            mode = normalize_filemode(entry.mode)
            entries.append(TreeEntry(
                entry.path.decode(), mode, EntryType.from_filemode(mode), entry.sha.decode(),
            ))
        return entries

    def get_branch_head_sha(self, branch: str) -> str:
        logger.debug("get_branch_head_sha %s", branch)
        try:
            return self._repo.refs[_HEADS + branch.encode()].decode()
        except KeyError:
            raise NotFoundError(f"Branch '{branch}' not found.")

    def get_commit(self, commit_sha: str) -> CommitInfo:
        logger.debug("get_commit %s", commit_sha)
        sha = self._resolve_sha(commit_sha)
        obj = self._peel(self._get(sha))
        if not isinstance(obj, _DCommit):
            raise NotFoundError(f"Commit '{commit_sha}' not found.")
        return _commit_info(obj)

    # --- Object creation ---

    def create_blob(self, data: bytes) -> str:
        blob = _DBlob.from_string(data)
        self._repo.object_store.add_object(blob)
        return blob.id.decode()

    def create_tree(self, entries: Sequence[TreeEntry]) -> str:
        tree = _DTree()
        seen: set[str] = set()
        for entry in entries:
            if entry.path in seen:
                raise InvalidInputError(f"Duplicate tree entry '{entry.path}'.")
            seen.add(entry.path)
            if entry.type is not EntryType.COMMIT and not self._contains(entry.sha):
                raise NotFoundError(f"Object '{entry.sha}' for entry '{entry.path}' not found.")
            tree.add(entry.path.encode(), int(entry.mode, 8), entry.sha.encode())
        self._repo.object_store.add_object(tree)
        logger.debug("create_tree %d entries -> %s", len(entries), tree.id.decode())
        return tree.id.decode()

    def create_commit(self, message: str, tree_sha: str, parents: Sequence[str]) -> CommitInfo:
        if not isinstance(self._get(tree_sha), _DTree):
            raise NotFoundError(f"Tree '{tree_sha}' not found.")
        for parent in parents:
            if not isinstance(self._get(parent), _DCommit):
                raise NotFoundError(f"Commit '{parent}' not found.")
        c = _DCommit()
        c.tree = tree_sha.encode()
        c.parents = [p.encode() for p in parents]
        c.author = c.committer = self._identity
        now = int(_time.time())
        c.author_time = c.commit_time = now
        c.author_timezone = c.commit_timezone = 0
        msg = message.encode()
        if not msg.endswith(b"\n"):
            msg += b"\n"
        c.message = msg
        c.encoding = b"UTF-8"
        self._repo.object_store.add_object(c)
        logger.debug("create_commit tree=%s -> %s", tree_sha, c.id.decode())
        return _commit_info(c)

    # --- Refs ---

    def _is_ancestor(self, ancestor: bytes, descendant: bytes) -> bool:
        queue = deque([descendant])
        seen: set[bytes] = set()
        while queue:
            sha = queue.popleft()
            if sha == ancestor:
                return True
            if sha in seen:
                continue
            seen.add(sha)
            try:
                obj = self._repo.object_store[sha]
            except KeyError:
                continue
            if isinstance(obj, _DCommit):
                queue.extend(obj.parents)
        return False

    def update_ref(self, branch: str, new_sha: str, force: bool = False) -> None:
        logger.debug("update_ref %s -> %s (force=%s)", branch, new_sha, force)
        ref = _HEADS + branch.encode()
        new = new_sha.encode()
        try:
            current = self._repo.refs[ref]
        except KeyError:
            raise NotFoundError(f"Branch '{branch}' not found.")
        if not isinstance(self._get(new_sha), _DCommit):
            raise NotFoundError(f"Commit '{new_sha}' not found.")
        if not force and not self._is_ancestor(current, new):
            raise StaleBranchError(
                f"Branch '{branch}' has moved since it was read; update is not a fast forward."
            )
        ok = self._repo.refs.set_if_equals(
            ref, None if force else current, new,
            committer=self._identity, message=b"treegraft: update ref",
        )
        if not ok:
            raise StaleBranchError(f"Branch '{branch}' changed during update.")

    def create_branch_ref(self, branch: str, target_sha: str) -> None:
        if not isinstance(self._get(target_sha), _DCommit):
            raise NotFoundError(f"Commit '{target_sha}' not found.")
        ok = self._repo.refs.add_if_new(
            _HEADS + branch.encode(), target_sha.encode(),
            committer=self._identity, message=b"branch: Created by treegraft",
        )
        if not ok:
            raise ConflictError(f"Branch '{branch}' already exists.")

    def delete_branch_ref(self, branch: str, expected_sha: str | None = None) -> None:
        logger.debug("delete_branch_ref %s (expected=%s)", branch, expected_sha)
        ref = _HEADS + branch.encode()
        if ref not in self._repo.refs:
            raise NotFoundError(f"Branch '{branch}' not found.")
        ok = self._repo.refs.remove_if_equals(
            ref, expected_sha.encode() if expected_sha else None,
            committer=self._identity, message=b"branch: Deleted by treegraft",
        )
        if not ok:
            raise StaleBranchError(f"Branch '{branch}' has moved since it was read.")

    def list_tags(self) -> list[TagRef]:
        tags = []
        for name, sha in sorted(self._repo.refs.as_dict(_TAGS.rstrip(b"/")).items()):
            try:
                target = self._peel(self._repo.object_store[sha]).id
            except KeyError:
                target = sha
            tags.append(TagRef(name.decode(), target.decode()))
        return tags

    def create_tag_ref(self, name: str, target_sha: str) -> None:
        logger.debug("create_tag_ref %s -> %s", name, target_sha)
        self._get(target_sha)
        ok = self._repo.refs.add_if_new(
            _TAGS + name.encode(), target_sha.encode(),
            committer=self._identity, message=b"tag: Created by treegraft",
        )
        if not ok:
            raise ConflictError(f"Tag '{name}' already exists.")

    def list_branches(self) -> list[str]:
        return sorted(name.decode() for name in self._repo.refs.as_dict(_HEADS.rstrip(b"/")))


def _commit_info(c: _DCommit) -> CommitInfo:
    return CommitInfo(
        sha=c.id.decode(),
        tree_sha=c.tree.decode(),
        parents=tuple(p.decode() for p in c.parents),
        message=c.message.decode(errors="replace").rstrip("\n"),
        author=c.author.decode(errors="replace"),
        timestamp=float(c.commit_time),
    )
