"""Environment-driven settings for stores and the CLI."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

from .exceptions import InvalidInputError
from .github import DEFAULT_API_BASE, DEFAULT_TIMEOUT, GitHubObjectStore
from .local import LocalObjectStore
from .store import ObjectStore
from .versioning import DEFAULT_PREFIX

_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Resolved configuration.

    Attributes:
        repo_path: Local bare repository (``TREEGRAFT_REPO``).
        github_owner: GitHub owner (``GITHUB_OWNER``).
        github_repo: GitHub repository (``GITHUB_REPO``).
        github_token: GitHub token (``GITHUB_TOKEN``).
        api_base: GitHub API root (``GITHUB_API_BASE``).
        timeout: Remote call timeout in seconds (``TREEGRAFT_TIMEOUT``).
        tag_prefix: Prefix of a seeded first tag (``TREEGRAFT_TAG_PREFIX``).
        auto_tag: Tag new commits (``TREEGRAFT_AUTO_TAG``).
        protected_branches: Branches the CLI refuses to write
            (``TREEGRAFT_PROTECTED_BRANCHES``, comma separated).
    """

    repo_path: str | None = None
    github_owner: str | None = None
    github_repo: str | None = None
    github_token: str | None = None
    api_base: str = DEFAULT_API_BASE
    timeout: float = DEFAULT_TIMEOUT
    tag_prefix: str = DEFAULT_PREFIX
    auto_tag: bool = True
    protected_branches: tuple[str, ...] = ("main",)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        raw_timeout = env.get("TREEGRAFT_TIMEOUT")
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
        except ValueError:
            raise InvalidInputError(f"TREEGRAFT_TIMEOUT must be a number, got {raw_timeout!r}")
        if timeout <= 0:
            raise InvalidInputError(f"TREEGRAFT_TIMEOUT must be positive, got {raw_timeout!r}")
        protected = env.get("TREEGRAFT_PROTECTED_BRANCHES")
        return cls(
            repo_path=env.get("TREEGRAFT_REPO") or None,
            github_owner=env.get("GITHUB_OWNER") or None,
            github_repo=env.get("GITHUB_REPO") or None,
            github_token=env.get("GITHUB_TOKEN") or None,
            api_base=env.get("GITHUB_API_BASE") or DEFAULT_API_BASE,
            timeout=timeout,
            tag_prefix=env.get("TREEGRAFT_TAG_PREFIX", DEFAULT_PREFIX),
            auto_tag=env.get("TREEGRAFT_AUTO_TAG", "1").strip().lower() not in _FALSE,
            protected_branches=(
                tuple(b.strip() for b in protected.split(",") if b.strip())
                if protected is not None else ("main",)
            ),
        )

    def with_overrides(self, **changes) -> Settings:
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @property
    def uses_github(self) -> bool:
        return bool(self.github_owner and self.github_repo)


def open_store(settings: Settings) -> ObjectStore:
    """Build the object store *settings* describe.

    A GitHub repository takes precedence over a local path.

    Raises:
        InvalidInputError: If neither is configured.
        NotFoundError: If the local repository does not exist.
    """
    if settings.uses_github:
        return GitHubObjectStore(
            settings.github_owner, settings.github_repo,
            token=settings.github_token, api_base=settings.api_base, timeout=settings.timeout,
        )
    if settings.repo_path:
        return LocalObjectStore.open(settings.repo_path, create=False)
    raise InvalidInputError(
        "No repository specified. Use --repo / TREEGRAFT_REPO or GITHUB_OWNER and GITHUB_REPO."
    )
