"""Tree-editing subcommands: rename, copy, copy-files, write, revert, compare."""

from __future__ import annotations

import json

import click

from ..engine import retry_operation
from ..exceptions import TreegraftError
from ._helpers import (
    main,
    _check_access,
    _engine,
    _fail,
    _repo_option,
    _report,
    _status,
    _write_options,
)


def _run(operation, retries: int):
    try:
        return retry_operation(operation, retries=retries)
    except TreegraftError as exc:
        raise _fail(exc)


_retries_option = click.option(
    "--retries", type=click.IntRange(min=1), default=1, show_default=True,
    help="Re-run the operation this many times in total if the branch moves.",
)


# ---------------------------------------------------------------------------
# rename
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.argument("branch")
@click.argument("path")
@click.argument("new_name")
@_write_options
@_retries_option
@click.pass_context
def rename(ctx, branch, path, new_name, author, no_tag, allow_protected, as_json, retries):
    """Rename the file or directory PATH on BRANCH to NEW_NAME.

    The entry stays in the same directory and keeps its content.
    """
    _check_access(ctx, author, branch, allow_protected)
    engine = _engine(ctx, no_tag)
    result = _run(lambda: engine.rename_item(branch, path, new_name, author), retries)
    _status(ctx, result.message)
    _report(result, as_json)


# ---------------------------------------------------------------------------
# copy
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.argument("branch")
@click.argument("source")
@click.argument("dest_dir", default="")
@click.option("--name", "new_name", default=None,
              help="Name of the copy (default: the source name).")
@_write_options
@_retries_option
@click.pass_context
def copy(ctx, branch, source, dest_dir, new_name, author, no_tag, allow_protected, as_json, retries):
    """Copy SOURCE into directory DEST_DIR on BRANCH.

    DEST_DIR defaults to the repository root.
    """
    _check_access(ctx, author, branch, allow_protected)
    engine = _engine(ctx, no_tag)
    result = _run(lambda: engine.copy_item(branch, source, dest_dir, author, new_name), retries)
    _status(ctx, result.message)
    _report(result, as_json)


# ---------------------------------------------------------------------------
# copy-files
# ---------------------------------------------------------------------------

@main.command("copy-files")
@_repo_option
@click.argument("source_branch")
@click.argument("target_branch")
@click.argument("paths", nargs=-1, required=True)
@_write_options
@_retries_option
@click.pass_context
def copy_files(ctx, source_branch, target_branch, paths, author, no_tag, allow_protected, as_json, retries):
    """Copy files PATHS from SOURCE_BRANCH to TARGET_BRANCH.

    Each file lands at the same path on the target, overwriting what is
    there. Paths that are not files on the source are skipped.
    """
    _check_access(ctx, author, target_branch, allow_protected)
    engine = _engine(ctx, no_tag)
    result = _run(lambda: engine.copy_files(source_branch, target_branch, paths, author), retries)
    _status(ctx, result.message)
    for path in result.skipped:
        click.echo(f"Skipped {path}", err=True)
    _report(result, as_json)


# ---------------------------------------------------------------------------
# write
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.argument("branch")
@click.argument("path")
@click.argument("source", type=click.File("rb"), default="-")
@click.option("-m", "--message", default=None, help="Commit message.")
@_write_options
@_retries_option
@click.pass_context
def write(ctx, branch, path, source, message, author, no_tag, allow_protected, as_json, retries):
    """Commit the contents of SOURCE as file PATH on BRANCH.

    SOURCE defaults to stdin. The parent directory of PATH must exist.
    """
    _check_access(ctx, author, branch, allow_protected)
    data = source.read()
    engine = _engine(ctx, no_tag)
    result = _run(lambda: engine.write_file(branch, path, data, author, message), retries)
    _status(ctx, result.message)
    _report(result, as_json)


# ---------------------------------------------------------------------------
# revert
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.argument("branch")
@click.argument("commit")
@click.option("-m", "--message", default=None, help="Commit message.")
@_write_options
@_retries_option
@click.pass_context
def revert(ctx, branch, commit, message, author, no_tag, allow_protected, as_json, retries):
    """Restore BRANCH to the tree of COMMIT as a new commit.

    History is kept: the new commit's parent is the current head.
    """
    _check_access(ctx, author, branch, allow_protected)
    engine = _engine(ctx, no_tag)
    result = _run(lambda: engine.revert_branch(branch, commit, author, message), retries)
    _status(ctx, result.message)
    _report(result, as_json)


# ---------------------------------------------------------------------------
# compare
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.argument("base")
@click.argument("head")
@click.option("--json", "as_json", is_flag=True, default=False,
              help="Print the result as JSON.")
@click.pass_context
def compare(ctx, base, head, as_json):
    """Show files added, removed or modified from BASE to HEAD.

    Exits with status 1 when the branches differ.
    """
    engine = _engine(ctx)
    try:
        diff = engine.compare_branches(base, head)
    except TreegraftError as exc:
        raise _fail(exc)
    if as_json:
        click.echo(json.dumps(diff.to_dict(), indent=2))
    else:
        for path in diff.added:
            click.echo(f"A  {path}")
        for path in diff.removed:
            click.echo(f"D  {path}")
        for path in diff.modified:
            click.echo(f"M  {path}")
    if not diff.identical:
        ctx.exit(1)
