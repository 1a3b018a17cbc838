"""Tests for fast-forward-only branch updates under competing writers."""

import pytest

from treegraft import LocalObjectStore, StaleBranchError, TreeEngine, retry_operation
from treegraft.exceptions import ConflictError

from helpers import entry_at, head_tree


class _RacingStore(LocalObjectStore):
    """Lets a competing writer move the branch just before the first commit."""

    def __init__(self, repo, competitor):
        super().__init__(repo)
        self._competitor = competitor
        self.commits = 0

    def create_commit(self, message, tree_sha, parents):
        self.commits += 1
        if self._competitor is not None:
            competitor, self._competitor = self._competitor, None
            competitor()
        return super().create_commit(message, tree_sha, parents)


def _rival(repo):
    rival = TreeEngine(LocalObjectStore(repo))
    return lambda: rival.rename_item("feature/x", "other/c.txt", "d.txt", "bob")


class TestStaleBranch:
    def test_loser_fails_and_branch_keeps_winner(self, seeded):
        racing = _RacingStore(seeded._repo, _rival(seeded._repo))
        engine = TreeEngine(racing)
        with pytest.raises(StaleBranchError):
            engine.rename_item("feature/x", "hello.txt", "hi.txt", "alice")
        root = head_tree(seeded, "feature/x")
        assert entry_at(seeded, root, "other/d.txt") is not None
        assert entry_at(seeded, root, "hello.txt") is not None
        assert entry_at(seeded, root, "hi.txt") is None
        assert [t.name for t in seeded.list_tags()] == ["v0.0.1"]

    def test_stale_is_a_conflict(self):
        assert issubclass(StaleBranchError, ConflictError)
        assert StaleBranchError("moved").to_dict()["error"] == "conflict"

    def test_direct_non_fast_forward_rejected(self, seeded):
        main_head = seeded.get_branch_head_sha("main")
        commit = seeded.create_commit("side", head_tree(seeded, "main"), [])
        with pytest.raises(StaleBranchError):
            seeded.update_ref("main", commit.sha)
        assert seeded.get_branch_head_sha("main") == main_head

    def test_forced_update(self, seeded):
        commit = seeded.create_commit("side", head_tree(seeded, "main"), [])
        seeded.update_ref("main", commit.sha, force=True)
        assert seeded.get_branch_head_sha("main") == commit.sha


class _MovingBeforeDeleteStore(LocalObjectStore):
    """Runs a competing write just before the first branch deletion."""

    def __init__(self, repo, competitor):
        super().__init__(repo)
        self._competitor = competitor

    def delete_branch_ref(self, branch, expected_sha=None):
        if self._competitor is not None:
            competitor, self._competitor = self._competitor, None
            competitor()
        return super().delete_branch_ref(branch, expected_sha)


class TestBranchMovesMidOperation:
    def test_moved_branch_is_kept_and_retired_ref_removed(self, seeded):
        racing = _MovingBeforeDeleteStore(seeded._repo, _rival(seeded._repo))
        with pytest.raises(StaleBranchError):
            TreeEngine(racing).retire_branch("feature/x", "alice")
        assert "feature/x" in seeded.list_branches()
        assert "feature/x-retired" not in seeded.list_branches()
        assert entry_at(seeded, head_tree(seeded, "feature/x"), "other/d.txt") is not None

    def test_copy_files_target_moved(self, seeded):
        racing = _RacingStore(seeded._repo, _rival(seeded._repo))
        with pytest.raises(StaleBranchError):
            TreeEngine(racing).copy_files("main", "feature/x", ["hello.txt"], "alice")
        assert entry_at(seeded, head_tree(seeded, "feature/x"), "other/d.txt") is not None


class TestRetry:
    def test_retry_applies_both_edits(self, seeded):
        racing = _RacingStore(seeded._repo, _rival(seeded._repo))
        engine = TreeEngine(racing)
        result = retry_operation(lambda: engine.rename_item("feature/x", "hello.txt", "hi.txt", "alice"))
        root = head_tree(seeded, "feature/x")
        assert entry_at(seeded, root, "hi.txt") is not None
        assert entry_at(seeded, root, "other/d.txt") is not None
        assert racing.commits == 2
        assert result.tag_name == "v0.0.2"

    def test_retry_exhausted(self):
        calls = []

        def always_stale():
            calls.append(1)
            raise StaleBranchError("moved")

        with pytest.raises(StaleBranchError):
            retry_operation(always_stale, retries=3)
        assert len(calls) == 3

    def test_other_errors_not_retried(self):
        calls = []

        def conflict():
            calls.append(1)
            raise ConflictError("exists")

        with pytest.raises(ConflictError):
            retry_operation(conflict)
        assert len(calls) == 1

    def test_invalid_retries(self):
        with pytest.raises(ValueError):
            retry_operation(lambda: None, retries=0)
