"""Semantic-version tag computation and best-effort auto-tagging."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from semver import Version

from .exceptions import TaggingError, TreegraftError
from .objects import TagRef
from .store import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "v"
SEED_VERSION = Version(0, 0, 1)


@dataclass(frozen=True, slots=True)
class TagOutcome:
    """Result of :func:`auto_tag`: exactly one of *name* / *error* is set."""

    name: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.name is not None and self.error is None


def parse_tag(name: str) -> tuple[str, Version] | None:
    """Split a tag into (prefix, version), or None if it is not semver.

    A single leading ``v``/``V`` is accepted as a prefix.
    """
    prefix = ""
    rest = name
    if rest[:1] in ("v", "V"):
        prefix, rest = rest[0], rest[1:]
    try:
        return prefix, Version.parse(rest)
    except (ValueError, TypeError):
        return None


def latest_semver_tag(tags: Iterable[TagRef], prefer_prefix: str | None = None) -> TagRef | None:
    """Return the tag with the highest release version.

    Tags that are not semantic versions, and prerelease versions, are
    ignored. Among tags of equal version, one spelled with
    *prefer_prefix* wins.
    """
    best: tuple[Version, str, TagRef] | None = None
    for tag in sorted(tags, key=lambda t: t.name):
        parsed = parse_tag(tag.name)
        if parsed is None or parsed[1].prerelease:
            continue
        prefix, version = parsed
        if best is None or version > best[0]:
            best = (version, prefix, tag)
        elif version == best[0] and prefix == prefer_prefix and best[1] != prefer_prefix:
            best = (version, prefix, tag)
    return best[2] if best else None


def next_patch_tag(tags: Iterable[TagRef], default_prefix: str = DEFAULT_PREFIX) -> str:
    """Compute the next patch-level tag name.

    The patch component of the latest release tag is incremented and its
    prefix kept. When two spellings share that version, the one using
    *default_prefix* wins. With no release tag at all,
    ``<default_prefix>0.0.1`` is returned.
    """
    latest = latest_semver_tag(tags, default_prefix)
    if latest is None:
        logger.debug("no semver tags; seeding %s%s", default_prefix, SEED_VERSION)
        return f"{default_prefix}{SEED_VERSION}"
    prefix, version = parse_tag(latest.name)
    return f"{prefix}{version.bump_patch()}"


def auto_tag(store: ObjectStore, commit_sha: str, prefix: str = DEFAULT_PREFIX) -> TagOutcome:
    """Create the next patch tag pointing at *commit_sha*.

    Never raises for store failures: list or create errors, and a
    computed name that already exists, are returned as ``error``.
    Existing tags are never moved or deleted.
    """
    name: str | None = None
    try:
        tags = store.list_tags()
        name = next_patch_tag(tags, prefix)
        if any(t.name == name for t in tags):
            raise TaggingError(f"Tag '{name}' already exists.")
        store.create_tag_ref(name, commit_sha)
    except TreegraftError as exc:
        label = f" {name}" if name else ""
        logger.warning("auto-tag%s for %s failed: %s", label, commit_sha, exc.message)
        return TagOutcome(error=exc.message)
    logger.info("tagged %s as %s", commit_sha, name)
    return TagOutcome(name=name)
