"""Shared fixtures for treegraft tests."""

import pytest
from click.testing import CliRunner

from treegraft import LocalObjectStore, TreeEngine

from helpers import SEED_FILES, commit_files


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("TREEGRAFT_REPO", "TREEGRAFT_TIMEOUT", "TREEGRAFT_TAG_PREFIX",
                 "TREEGRAFT_AUTO_TAG", "TREEGRAFT_PROTECTED_BRANCHES",
                 "GITHUB_OWNER", "GITHUB_REPO", "GITHUB_TOKEN", "GITHUB_API_BASE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store(tmp_path):
    """Fresh repository with an empty 'main' branch."""
    s = LocalObjectStore.open(tmp_path / "test.git", branch="main")
    yield s
    s.close()


@pytest.fixture
def seeded(store):
    """Repository whose 'main' and 'feature/x' both hold SEED_FILES."""
    sha = commit_files(store, "main", SEED_FILES)
    store.create_branch_ref("feature/x", sha)
    return store


@pytest.fixture
def engine(seeded):
    return TreeEngine(seeded)


# ---------------------------------------------------------------------------
# CLI fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def repo_path(tmp_path):
    """Path to a seeded repository with 'main' and 'feature/x'."""
    p = tmp_path / "cli.git"
    s = LocalObjectStore.open(p, branch="main")
    sha = commit_files(s, "main", SEED_FILES)
    s.create_branch_ref("feature/x", sha)
    s.close()
    return str(p)
