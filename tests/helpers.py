"""Tree-building helpers shared by the test modules."""

from treegraft.objects import FILEMODE_BLOB, FILEMODE_TREE, EntryType, TreeEntry

SEED_FILES = {
    "hello.txt": b"hello world",
    "dir": {"a.txt": b"aaa", "b.txt": b"bbb"},
    "other": {"c.txt": b"ccc"},
}


def build_tree(store, files):
    """Create a tree from a nested dict (bytes are blobs, dicts are subtrees)."""
    entries = []
    for name, value in files.items():
        if isinstance(value, dict):
            entries.append(TreeEntry(name, FILEMODE_TREE, EntryType.TREE, build_tree(store, value)))
        else:
            entries.append(TreeEntry(name, FILEMODE_BLOB, EntryType.BLOB, store.create_blob(value)))
    return store.create_tree(entries)


def commit_files(store, branch, files, message="seed"):
    """Commit *files* as the whole tree of *branch* and return the commit sha."""
    head = store.get_branch_head_sha(branch)
    commit = store.create_commit(message, build_tree(store, files), [head])
    store.update_ref(branch, commit.sha)
    return commit.sha


def entry_at(store, root_sha, path):
    """Return the TreeEntry at a slash-separated *path*, or None."""
    *dirs, name = path.split("/")
    current = root_sha
    for seg in dirs:
        match = [e for e in store.get_tree(current) if e.path == seg]
        if not match:
            return None
        current = match[0].sha
    match = [e for e in store.get_tree(current) if e.path == name]
    return match[0] if match else None


def head_tree(store, branch):
    return store.get_commit_tree_sha(store.get_branch_head_sha(branch))


def blob_at(store, branch, path):
    """Return the content of the file at *path* on *branch*, or None."""
    entry = entry_at(store, head_tree(store, branch), path)
    if entry is None:
        return None
    return store._repo.object_store[entry.sha.encode()].data
