"""Tests for Settings, open_store and the protected-branch authorizer."""

import pytest

from treegraft import (
    GitHubObjectStore,
    LocalObjectStore,
    ProtectedBranchAuthorizer,
    Settings,
    open_store,
)
from treegraft.exceptions import ErrorKind, InvalidInputError, NotFoundError, PermissionDeniedError


class TestSettings:
    def test_defaults(self):
        s = Settings.from_env({})
        assert s.repo_path is None
        assert s.timeout == 30.0
        assert s.tag_prefix == "v"
        assert s.auto_tag is True
        assert s.protected_branches == ("main",)
        assert not s.uses_github

    def test_from_env(self):
        s = Settings.from_env({
            "TREEGRAFT_REPO": "/data/repo.git",
            "GITHUB_OWNER": "octo",
            "GITHUB_REPO": "data",
            "GITHUB_TOKEN": "t",
            "TREEGRAFT_TIMEOUT": "5",
            "TREEGRAFT_TAG_PREFIX": "",
            "TREEGRAFT_AUTO_TAG": "off",
            "TREEGRAFT_PROTECTED_BRANCHES": "main, release ,",
        })
        assert s.repo_path == "/data/repo.git"
        assert s.uses_github
        assert s.timeout == 5.0
        assert s.tag_prefix == ""
        assert s.auto_tag is False
        assert s.protected_branches == ("main", "release")

    def test_empty_protected_list(self):
        assert Settings.from_env({"TREEGRAFT_PROTECTED_BRANCHES": ""}).protected_branches == ()

    @pytest.mark.parametrize("value", ["soon", "0", "-1"])
    def test_bad_timeout(self, value):
        with pytest.raises(InvalidInputError, match="TREEGRAFT_TIMEOUT"):
            Settings.from_env({"TREEGRAFT_TIMEOUT": value})

    def test_overrides_skip_none(self):
        s = Settings(repo_path="a").with_overrides(repo_path=None, tag_prefix="rel-")
        assert s.repo_path == "a"
        assert s.tag_prefix == "rel-"


class TestOpenStore:
    def test_github_preferred(self, tmp_path):
        s = Settings(repo_path=str(tmp_path), github_owner="octo", github_repo="data")
        store = open_store(s)
        assert isinstance(store, GitHubObjectStore)
        assert store.owner == "octo"

    def test_local(self, tmp_path):
        LocalObjectStore.open(tmp_path / "r.git").close()
        store = open_store(Settings(repo_path=str(tmp_path / "r.git")))
        assert isinstance(store, LocalObjectStore)
        assert store.list_branches() == ["main"]
        store.close()

    def test_local_missing(self, tmp_path):
        with pytest.raises(NotFoundError):
            open_store(Settings(repo_path=str(tmp_path / "missing.git")))

    def test_local_not_a_repo(self, tmp_path):
        with pytest.raises(NotFoundError):
            open_store(Settings(repo_path=str(tmp_path)))

    def test_nothing_configured(self):
        with pytest.raises(InvalidInputError):
            open_store(Settings())


class TestProtectedBranches:
    def test_denied(self):
        decision = ProtectedBranchAuthorizer().check("alice", "main")
        assert not decision
        assert decision.reason == "Cannot modify the protected branch 'main'."

    def test_allowed(self):
        assert ProtectedBranchAuthorizer(["release"]).check("alice", "main")

    def test_require_raises_permission_denied(self):
        with pytest.raises(PermissionDeniedError) as info:
            ProtectedBranchAuthorizer().require("alice", "main")
        assert info.value.kind is ErrorKind.PERMISSION_DENIED
        assert info.value.to_dict() == {
            "error": "permission_denied",
            "message": "Cannot modify the protected branch 'main'.",
        }
        assert not isinstance(info.value, InvalidInputError)

    def test_require_allowed(self):
        ProtectedBranchAuthorizer().require("alice", "feature/x")
