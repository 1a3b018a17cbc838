"""Tests for the treegraft CLI."""

import json

from treegraft import LocalObjectStore
from treegraft.cli import main

from helpers import SEED_FILES, blob_at, commit_files, entry_at, head_tree


def _open(path):
    return LocalObjectStore.open(path, create=False)


class TestInit:
    def test_init(self, runner, tmp_path):
        p = str(tmp_path / "new.git")
        result = runner.invoke(main, ["init", "--repo", p, "--branch", "trunk"])
        assert result.exit_code == 0, result.output
        store = _open(p)
        assert store.list_branches() == ["trunk"]
        store.close()

    def test_init_existing(self, runner, repo_path):
        result = runner.invoke(main, ["init", "--repo", repo_path])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_init_from_env(self, runner, tmp_path):
        p = str(tmp_path / "env.git")
        result = runner.invoke(main, ["init"], env={"TREEGRAFT_REPO": p})
        assert result.exit_code == 0, result.output
        _open(p).close()

    def test_no_repo(self, runner):
        result = runner.invoke(main, ["tags"])
        assert result.exit_code == 1
        assert "invalid_input" in result.output


class TestRename:
    def test_rename(self, runner, repo_path):
        result = runner.invoke(main, ["rename", "--repo", repo_path, "feature/x",
                                      "dir/b.txt", "c.txt", "--author", "alice"])
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        store = _open(repo_path)
        assert lines[0] == store.get_branch_head_sha("feature/x")
        assert "Tagged v0.0.1" in lines
        assert entry_at(store, head_tree(store, "feature/x"), "dir/c.txt") is not None
        store.close()

    def test_repo_on_group(self, runner, repo_path):
        result = runner.invoke(main, ["--repo", repo_path, "rename", "feature/x",
                                      "hello.txt", "hi.txt", "-a", "alice", "--no-tag"])
        assert result.exit_code == 0, result.output
        assert "Tagged" not in result.output

    def test_json(self, runner, repo_path):
        result = runner.invoke(main, ["rename", "--repo", repo_path, "feature/x",
                                      "hello.txt", "hi.txt", "--author", "alice", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["tag"] == "v0.0.1"
        assert data["message"].startswith("Item renamed to 'hi.txt' successfully.")

    def test_protected_branch(self, runner, repo_path):
        result = runner.invoke(main, ["rename", "--repo", repo_path, "main",
                                      "hello.txt", "hi.txt", "--author", "alice"])
        assert result.exit_code == 1
        assert "permission_denied: Cannot modify the protected branch 'main'" in result.output
        assert "invalid_input" not in result.output

    def test_allow_protected(self, runner, repo_path):
        result = runner.invoke(main, ["rename", "--repo", repo_path, "main",
                                      "hello.txt", "hi.txt", "--author", "alice",
                                      "--allow-protected"])
        assert result.exit_code == 0, result.output

    def test_protected_from_env(self, runner, repo_path):
        result = runner.invoke(main, ["rename", "--repo", repo_path, "feature/x",
                                      "hello.txt", "hi.txt", "--author", "alice"],
                               env={"TREEGRAFT_PROTECTED_BRANCHES": "feature/x"})
        assert result.exit_code == 1

    def test_conflict(self, runner, repo_path):
        result = runner.invoke(main, ["rename", "--repo", repo_path, "feature/x",
                                      "dir/a.txt", "b.txt", "--author", "alice"])
        assert result.exit_code == 1
        assert "conflict" in result.output

    def test_missing(self, runner, repo_path):
        result = runner.invoke(main, ["rename", "--repo", repo_path, "feature/x",
                                      "ghost.txt", "b.txt", "--author", "alice"])
        assert result.exit_code == 1
        assert "not_found" in result.output

    def test_author_required(self, runner, repo_path):
        result = runner.invoke(main, ["rename", "--repo", repo_path, "feature/x",
                                      "hello.txt", "hi.txt"])
        assert result.exit_code == 2

    def test_auto_tag_disabled_by_env(self, runner, repo_path):
        result = runner.invoke(main, ["rename", "--repo", repo_path, "feature/x",
                                      "hello.txt", "hi.txt", "--author", "alice"],
                               env={"TREEGRAFT_AUTO_TAG": "0"})
        assert result.exit_code == 0, result.output
        assert "Tagged" not in result.output


class TestCopyRevert:
    def test_copy(self, runner, repo_path):
        result = runner.invoke(main, ["copy", "--repo", repo_path, "feature/x",
                                      "dir/a.txt", "other", "--author", "alice"])
        assert result.exit_code == 0, result.output
        store = _open(repo_path)
        assert entry_at(store, head_tree(store, "feature/x"), "other/a.txt") is not None
        store.close()

    def test_copy_to_root(self, runner, repo_path):
        result = runner.invoke(main, ["copy", "--repo", repo_path, "feature/x",
                                      "dir/a.txt", "--name", "top.txt", "--author", "alice"])
        assert result.exit_code == 0, result.output
        store = _open(repo_path)
        assert entry_at(store, head_tree(store, "feature/x"), "top.txt") is not None
        store.close()

    def test_revert(self, runner, repo_path):
        store = _open(repo_path)
        seed = store.get_branch_head_sha("feature/x")
        seed_root = head_tree(store, "feature/x")
        store.close()
        r = runner.invoke(main, ["rename", "--repo", repo_path, "feature/x",
                                 "hello.txt", "hi.txt", "--author", "alice"])
        assert r.exit_code == 0, r.output
        r = runner.invoke(main, ["revert", "--repo", repo_path, "feature/x", seed[:7],
                                 "--author", "bob"])
        assert r.exit_code == 0, r.output
        assert "Tagged v0.0.2" in r.output
        store = _open(repo_path)
        assert head_tree(store, "feature/x") == seed_root
        store.close()

    def test_revert_bad_sha(self, runner, repo_path):
        r = runner.invoke(main, ["revert", "--repo", repo_path, "feature/x", "zzz",
                                 "--author", "bob"])
        assert r.exit_code == 1
        assert "invalid_input" in r.output


class TestBranchCompareTags:
    def test_branch_create_and_list(self, runner, repo_path):
        r = runner.invoke(main, ["branch", "--repo", repo_path, "create", "feature/y",
                                 "feature/x", "--author", "alice"])
        assert r.exit_code == 0, r.output
        r = runner.invoke(main, ["branch", "--repo", repo_path, "list"])
        assert r.exit_code == 0, r.output
        assert r.output.split() == ["feature/x", "feature/y", "main"]

    def test_branch_create_existing(self, runner, repo_path):
        r = runner.invoke(main, ["branch", "--repo", repo_path, "create", "feature/x",
                                 "main", "--author", "alice"])
        assert r.exit_code == 1
        assert "conflict" in r.output

    def test_compare_identical(self, runner, repo_path):
        r = runner.invoke(main, ["compare", "--repo", repo_path, "main", "feature/x"])
        assert r.exit_code == 0
        assert r.output == ""

    def test_compare_differs(self, runner, repo_path):
        runner.invoke(main, ["rename", "--repo", repo_path, "feature/x",
                             "dir/b.txt", "c.txt", "--author", "alice"])
        r = runner.invoke(main, ["compare", "--repo", repo_path, "main", "feature/x"])
        assert r.exit_code == 1
        assert r.output.splitlines() == ["A  dir/c.txt", "D  dir/b.txt"]

    def test_compare_json(self, runner, repo_path):
        r = runner.invoke(main, ["compare", "--repo", repo_path, "main", "feature/x", "--json"])
        assert json.loads(r.output) == {"added": [], "removed": [], "modified": []}

    def test_tags(self, runner, repo_path):
        store = _open(repo_path)
        head = store.get_branch_head_sha("main")
        store.create_tag_ref("v1.2.3", head)
        store.create_tag_ref("nightly", head)
        store.close()
        r = runner.invoke(main, ["tags", "--repo", repo_path])
        assert r.exit_code == 0, r.output
        lines = r.output.splitlines()
        assert lines[0] == f"  nightly  {head[:7]}  (not semver)"
        assert lines[1] == f"* v1.2.3  {head[:7]}"
        r = runner.invoke(main, ["tags", "--repo", repo_path, "--next"])
        assert r.output.strip() == "v1.2.4"


class TestCopyFilesWrite:
    def test_copy_files(self, runner, repo_path):
        store = _open(repo_path)
        commit_files(store, "main", {**SEED_FILES, "hello.txt": b"from main"})
        store.close()
        r = runner.invoke(main, ["copy-files", "--repo", repo_path, "main", "feature/x",
                                 "hello.txt", "ghost.txt", "--author", "alice"])
        assert r.exit_code == 0, r.output
        assert "Skipped ghost.txt" in r.output
        assert "Tagged v0.0.1" in r.output
        store = _open(repo_path)
        assert blob_at(store, "feature/x", "hello.txt") == b"from main"
        store.close()

    def test_copy_files_nothing_eligible(self, runner, repo_path):
        r = runner.invoke(main, ["copy-files", "--repo", repo_path, "main", "feature/x",
                                 "ghost.txt", "--author", "alice"])
        assert r.exit_code == 1
        assert "not_found: No eligible files found to copy." in r.output

    def test_copy_files_into_protected(self, runner, repo_path):
        r = runner.invoke(main, ["copy-files", "--repo", repo_path, "feature/x", "main",
                                 "hello.txt", "--author", "alice"])
        assert r.exit_code == 1
        assert "permission_denied" in r.output

    def test_write_from_stdin(self, runner, repo_path):
        r = runner.invoke(main, ["write", "--repo", repo_path, "feature/x", "dir/new.txt",
                                 "--author", "alice", "--json"], input="piped\n")
        assert r.exit_code == 0, r.output
        data = json.loads(r.output)
        assert data["message"].startswith("File 'dir/new.txt' added successfully.")
        store = _open(repo_path)
        assert blob_at(store, "feature/x", "dir/new.txt") == b"piped\n"
        store.close()

    def test_write_from_file(self, runner, repo_path, tmp_path):
        src = tmp_path / "payload.bin"
        src.write_bytes(b"\x00\x01")
        r = runner.invoke(main, ["write", "--repo", repo_path, "feature/x", "hello.txt", str(src),
                                 "-m", "Replace greeting", "--author", "bob"])
        assert r.exit_code == 0, r.output
        store = _open(repo_path)
        assert blob_at(store, "feature/x", "hello.txt") == b"\x00\x01"
        assert store.get_commit(store.get_branch_head_sha("feature/x")).message == \
            "Replace greeting [author: bob]"
        store.close()


class TestBranchRetire:
    def test_retire(self, runner, repo_path):
        r = runner.invoke(main, ["branch", "--repo", repo_path, "retire", "feature/x",
                                 "--author", "alice"])
        assert r.exit_code == 0, r.output
        r = runner.invoke(main, ["branch", "--repo", repo_path, "list"])
        assert r.output.split() == ["feature/x-retired", "main"]

    def test_retire_protected(self, runner, repo_path):
        r = runner.invoke(main, ["branch", "--repo", repo_path, "retire", "main",
                                 "--author", "alice"])
        assert r.exit_code == 1
        assert "permission_denied" in r.output

    def test_retire_twice(self, runner, repo_path):
        runner.invoke(main, ["branch", "--repo", repo_path, "retire", "feature/x", "--author", "alice"])
        r = runner.invoke(main, ["branch", "--repo", repo_path, "retire", "feature/x-retired",
                                 "--author", "alice"])
        assert r.exit_code == 1
        assert "already retired" in r.output
