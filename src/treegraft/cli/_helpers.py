"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import replace

import click

from ..config import Settings, open_store
from ..engine import OperationResult, TreeEngine
from ..exceptions import PermissionDeniedError, TreegraftError
from ..policy import ProtectedBranchAuthorizer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _store_repo(ctx, param, value):
    """Click callback: store --repo value in the context."""
    ctx.ensure_object(dict)
    if value is not None:
        ctx.obj["repo_path"] = value
    return value


def _store_github(ctx, param, value):
    """Click callback: store --github OWNER/REPO in the context."""
    ctx.ensure_object(dict)
    if value is not None:
        owner, sep, name = value.partition("/")
        if not sep or not owner or not name or "/" in name:
            raise click.BadParameter("expected OWNER/REPO", ctx=ctx, param=param)
        ctx.obj["github"] = (owner, name)
    return value


def _repo_option(f):
    """Shared --repo/-r option decorator for all commands."""
    return click.option(
        "--repo", "-r", type=click.Path(),
        help="Path to bare git repository (or set TREEGRAFT_REPO).",
        expose_value=False, callback=_store_repo, is_eager=True,
    )(f)


def _write_options(f):
    """Shared options for commands that move a branch."""
    f = click.option("--json", "as_json", is_flag=True, default=False,
                     help="Print the result as JSON.")(f)
    f = click.option("--allow-protected", is_flag=True, default=False,
                     help="Permit writing to a protected branch.")(f)
    f = click.option("--no-tag", is_flag=True, default=False,
                     help="Do not auto-tag the new commit.")(f)
    f = click.option("--author", "-a", required=True,
                     help="Actor id recorded in the commit message.")(f)
    return f


def _settings(ctx) -> Settings:
    try:
        settings = Settings.from_env()
    except TreegraftError as exc:
        raise _fail(exc)
    github = ctx.obj.get("github")
    if github:
        settings = settings.with_overrides(github_owner=github[0], github_repo=github[1])
    elif ctx.obj.get("repo_path"):
        settings = replace(settings, repo_path=ctx.obj["repo_path"], github_owner=None, github_repo=None)
    return settings


def _engine(ctx, no_tag: bool = False) -> TreeEngine:
    settings = _settings(ctx)
    try:
        store = open_store(settings)
    except TreegraftError as exc:
        raise _fail(exc)
    _status(ctx, f"Using {store!r}")
    return TreeEngine(store, tagging=settings.auto_tag and not no_tag, tag_prefix=settings.tag_prefix)


def _check_access(ctx, author: str, branch: str, allow_protected: bool) -> None:
    if allow_protected:
        return
    authorizer = ProtectedBranchAuthorizer(_settings(ctx).protected_branches)
    try:
        authorizer.require(author, branch)
    except PermissionDeniedError as exc:
        raise click.ClickException(
            f"{exc.kind}: {exc.message} (use --allow-protected to override)"
        )


def _fail(exc: TreegraftError) -> click.ClickException:
    return click.ClickException(f"{exc.kind}: {exc.message}")


def _report(result: OperationResult, as_json: bool) -> None:
    """Print an operation result; tag failures go to stderr as a warning."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        click.echo(result.commit.sha)
        if result.tag_name:
            click.echo(f"Tagged {result.tag_name}")
    if result.tag_error:
        click.echo(f"Warning: {result.message}", err=True)


def _configure_logging(verbosity: int) -> None:
    if verbosity <= 0:
        return
    level = logging.DEBUG if verbosity > 1 else logging.INFO
    logging.basicConfig(stream=sys.stderr, level=level,
                        format="%(levelname)s %(name)s: %(message)s")


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--repo", "-r", type=click.Path(),
              help="Path to bare git repository (or set TREEGRAFT_REPO).",
              expose_value=False, callback=_store_repo, is_eager=True)
@click.option("--github", metavar="OWNER/REPO", default=None,
              help="Operate on a GitHub repository (token from GITHUB_TOKEN).",
              expose_value=False, callback=_store_github, is_eager=True)
@click.option("-v", "--verbose", count=True, help="Verbose output on stderr (-vv for debug).")
@click.pass_context
def main(ctx, verbose):
    """treegraft: atomic tree edits on git branches.

    Rename, copy or write entries, copy files between branches, revert a
    branch to an earlier tree, and create or retire branches. Each tree
    edit is a single fast-forward commit with an automatic patch-version
    tag.

    \b
    Quick start:
      treegraft init -r data.git
      treegraft rename -r data.git feature/x docs/a.md b.md --author alice
      treegraft revert -r data.git feature/x 1a2b3c4 --author alice

    \b
    Set TREEGRAFT_REPO to avoid passing --repo on every call, or
    GITHUB_OWNER / GITHUB_REPO / GITHUB_TOKEN to work against GitHub.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)


@main.group()
@_repo_option
@click.pass_context
def branch(ctx):
    """Manage branches."""
