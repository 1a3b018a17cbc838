"""Repository, branch and tag subcommands."""

from __future__ import annotations

from pathlib import Path

import click

from ..exceptions import InvalidInputError, TreegraftError
from ..local import LocalObjectStore
from ..versioning import latest_semver_tag, next_patch_tag, parse_tag
from ._helpers import (
    main,
    branch,
    _check_access,
    _engine,
    _fail,
    _repo_option,
    _report,
    _settings,
    _status,
    _write_options,
)


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.option("-b", "--branch", "initial_branch", default="main", show_default=True,
              help="Name of the initial branch.")
@click.pass_context
def init(ctx, initial_branch):
    """Create a new bare repository with an empty initial commit."""
    settings = _settings(ctx)
    if not settings.repo_path:
        raise _fail(InvalidInputError("No repository specified. Use --repo or set TREEGRAFT_REPO."))
    if Path(settings.repo_path).exists():
        raise click.ClickException(f"Repository already exists: {settings.repo_path}")
    LocalObjectStore.open(settings.repo_path, branch=initial_branch).close()
    _status(ctx, f"Initialized {settings.repo_path} on branch {initial_branch}")


# ---------------------------------------------------------------------------
# branch subcommands
# ---------------------------------------------------------------------------

@branch.command("create")
@_repo_option
@click.argument("name")
@click.argument("source")
@_write_options
@click.pass_context
def branch_create(ctx, name, source, author, no_tag, allow_protected, as_json):
    """Create branch NAME at the head of branch SOURCE."""
    _check_access(ctx, author, name, allow_protected)
    engine = _engine(ctx, no_tag)
    try:
        result = engine.create_branch(name, source, author)
    except TreegraftError as exc:
        raise _fail(exc)
    _status(ctx, result.message)
    _report(result, as_json)


@branch.command("retire")
@_repo_option
@click.argument("name")
@click.option("--author", "-a", required=True,
              help="Actor id recorded in the log.")
@click.option("--allow-protected", is_flag=True, default=False,
              help="Permit retiring a protected branch.")
@click.option("--json", "as_json", is_flag=True, default=False,
              help="Print the result as JSON.")
@click.pass_context
def branch_retire(ctx, name, author, allow_protected, as_json):
    """Rename branch NAME to NAME-retired."""
    _check_access(ctx, author, name, allow_protected)
    engine = _engine(ctx)
    try:
        result = engine.retire_branch(name, author)
    except TreegraftError as exc:
        raise _fail(exc)
    _status(ctx, result.message)
    _report(result, as_json)


@branch.command("list")
@_repo_option
@click.pass_context
def branch_list(ctx):
    """List all branches of a local repository."""
    store = _engine(ctx).store
    if not isinstance(store, LocalObjectStore):
        raise click.ClickException("branch list is only available for local repositories")
    for name in store.list_branches():
        click.echo(name)


# ---------------------------------------------------------------------------
# tags
# ---------------------------------------------------------------------------

@main.command()
@_repo_option
@click.option("--next", "show_next", is_flag=True, default=False,
              help="Print only the tag the next write would create.")
@click.pass_context
def tags(ctx, show_next):
    """List tags; the latest release tag is marked with '*'."""
    settings = _settings(ctx)
    engine = _engine(ctx)
    try:
        all_tags = engine.store.list_tags()
    except TreegraftError as exc:
        raise _fail(exc)
    if show_next:
        click.echo(next_patch_tag(all_tags, settings.tag_prefix))
        return
    latest = latest_semver_tag(all_tags, settings.tag_prefix)
    for tag in sorted(all_tags, key=lambda t: t.name):
        marker = "*" if latest is not None and tag.name == latest.name else " "
        kind = "" if parse_tag(tag.name) is not None else "  (not semver)"
        click.echo(f"{marker} {tag.name}  {tag.target_sha[:7]}{kind}")
