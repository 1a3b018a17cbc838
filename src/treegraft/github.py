"""GitHubObjectStore: an ObjectStore over the GitHub Git Data REST API."""

from __future__ import annotations

import base64
import logging
from collections.abc import Sequence
from datetime import datetime
from urllib.parse import quote

import requests

from .exceptions import (
    ConflictError,
    NotFoundError,
    StaleBranchError,
    UpstreamError,
)
from .objects import CommitInfo, EntryType, TagRef, TreeEntry, normalize_filemode
from .store import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.github.com"
DEFAULT_TIMEOUT = 30.0


def _error_message(resp: requests.Response, default: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        return default
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return default


def _parse_time(value: str | None) -> float:
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


class GitHubObjectStore(ObjectStore):
    """Object store for one GitHub repository.

    Args:
        owner: Repository owner.
        repo: Repository name.
        token: Personal access token sent as ``Authorization: token ...``.
        api_base: API root URL.
        timeout: Per-request timeout in seconds.
        session: Optional pre-configured :class:`requests.Session`.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        token: str | None = None,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.owner = owner
        self.repo = repo
        self._base = f"{api_base.rstrip('/')}/repos/{owner}/{repo}"
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()
        self._session.headers.update({"Accept": "application/vnd.github+json"})
        if token:
            self._session.headers.update({"Authorization": f"token {token}"})

    def __repr__(self) -> str:
        return f"GitHubObjectStore({self.owner!r}, {self.repo!r})"

    def _request(self, method: str, path: str, *, what: str, json: dict | None = None, params: dict | None = None):
        """Send one request, mapping transport failures to UpstreamError.

        Status codes are left to the caller, so endpoint-specific codes
        (409, 422) can be mapped before :meth:`_check`.
        """
        return self._send(method, f"{self._base}/{path}", what=what, json=json, params=params)

    def _send(self, method: str, url: str, *, what: str, json: dict | None = None, params: dict | None = None):
        logger.debug("%s %s", method, url)
        try:
            resp = self._session.request(method, url, json=json, params=params, timeout=self._timeout)
        except requests.Timeout:
            raise UpstreamError(f"Timed out while trying to {what}.")
        except requests.RequestException as exc:
            raise UpstreamError(f"Failed to {what}: {exc}")
        return resp

    def _check(self, resp: requests.Response, what: str, not_found: str | None = None):
        if resp.status_code == 404:
            raise NotFoundError(not_found or _error_message(resp, f"Not found while trying to {what}."))
        if resp.status_code >= 400:
            raise UpstreamError(_error_message(resp, f"Failed to {what} (HTTP {resp.status_code})."))
        try:
            return resp.json()
        except ValueError:
            raise UpstreamError(f"Invalid response from GitHub while trying to {what}.")

    # --- Reads ---

    def get_tree(self, tree_sha: str) -> list[TreeEntry]:
        what = f"fetch tree {tree_sha}"
        data = self._check(self._request("GET", f"git/trees/{tree_sha}", what=what), what,
                           not_found=f"Tree '{tree_sha}' not found.")
        if not isinstance(data, dict) or not isinstance(data.get("tree"), list):
            raise UpstreamError("Invalid tree data format received from GitHub.")
        entries = []
        for item in data["tree"]:
            try:
                mode = normalize_filemode(item["mode"])
                entries.append(TreeEntry(item["path"], mode, EntryType(item["type"]), item["sha"]))
            except (KeyError, TypeError, ValueError):
                raise UpstreamError(f"Invalid tree entry received from GitHub: {item!r}")
        return entries

    def get_branch_head_sha(self, branch: str) -> str:
        what = f"fetch branch details for '{branch}'"
        resp = self._request("GET", f"branches/{quote(branch, safe='')}", what=what)
        data = self._check(resp, what, not_found=f"Branch '{branch}' not found.")
        try:
            return data["commit"]["sha"]
        except (KeyError, TypeError):
            raise UpstreamError("Invalid branch data received from GitHub.")

    def get_commit(self, commit_sha: str) -> CommitInfo:
        what = f"fetch commit details for '{commit_sha}'"
        resp = self._request("GET", f"git/commits/{commit_sha}", what=what)
        if resp.status_code == 422:
            raise NotFoundError(f"Commit '{commit_sha}' not found.")
        data = self._check(resp, what, not_found=f"Commit '{commit_sha}' not found.")
        return self._commit_info(data)

    def _commit_info(self, data) -> CommitInfo:
        try:
            author = data.get("author") or {}
            return CommitInfo(
                sha=data["sha"],
                tree_sha=data["tree"]["sha"],
                parents=tuple(p["sha"] for p in data.get("parents", [])),
                message=data.get("message", ""),
                author=f"{author.get('name', '')} <{author.get('email', '')}>" if author else "",
                timestamp=_parse_time(author.get("date")),
            )
        except (KeyError, TypeError, AttributeError):
            raise UpstreamError("Invalid commit data received from GitHub.")

    def list_tags(self) -> list[TagRef]:
        """Return every tag, following the ``Link: rel="next"`` pages."""
        what = "list tags"
        tags: list[TagRef] = []
        resp = self._request("GET", "tags", what=what, params={"per_page": 100})
        while True:
            data = self._check(resp, what)
            if not isinstance(data, list):
                raise UpstreamError("Invalid tag data received from GitHub.")
            try:
                tags.extend(TagRef(t["name"], t["commit"]["sha"]) for t in data)
            except (KeyError, TypeError):
                raise UpstreamError("Invalid tag data received from GitHub.")
            next_url = (resp.links or {}).get("next", {}).get("url")
            if not next_url:
                return tags
            resp = self._send("GET", next_url, what=what)

    # --- Writes ---

    def create_blob(self, data: bytes) -> str:
        what = "create blob"
        payload = {"content": base64.b64encode(data).decode("ascii"), "encoding": "base64"}
        data = self._check(self._request("POST", "git/blobs", what=what, json=payload), what)
        sha = data.get("sha") if isinstance(data, dict) else None
        if not sha:
            raise UpstreamError("Failed to create new blob object on GitHub.")
        return sha

    def create_tree(self, entries: Sequence[TreeEntry]) -> str:
        what = "create tree"
        payload = {"tree": [e.to_dict() for e in entries]}
        resp = self._request("POST", "git/trees", what=what, json=payload)
        data = self._check(resp, what)
        sha = data.get("sha") if isinstance(data, dict) else None
        if not sha:
            raise UpstreamError("Failed to create new tree object on GitHub.")
        logger.debug("created tree %s (%d entries)", sha, len(entries))
        return sha

    def create_commit(self, message: str, tree_sha: str, parents: Sequence[str]) -> CommitInfo:
        what = "create commit"
        payload = {"message": message, "tree": tree_sha, "parents": list(parents)}
        data = self._check(self._request("POST", "git/commits", what=what, json=payload), what)
        return self._commit_info(data)

    def update_ref(self, branch: str, new_sha: str, force: bool = False) -> None:
        what = f"update branch '{branch}'"
        resp = self._request("PATCH", f"git/refs/heads/{quote(branch, safe='/')}", what=what,
                             json={"sha": new_sha, "force": force})
        message = _error_message(resp, "")
        if resp.status_code == 409 or (resp.status_code == 422 and "fast forward" in message.lower()):
            raise StaleBranchError(
                f"Branch '{branch}' has moved since it was read: "
                + (message or "update is not a fast forward.")
            )
        if resp.status_code == 422:
            raise UpstreamError(message or f"Failed to {what} (HTTP 422).")
        self._check(resp, what, not_found=f"Branch '{branch}' not found.")

    def _create_ref(self, ref: str, sha: str, what: str, exists: str) -> None:
        resp = self._request("POST", "git/refs", what=what, json={"ref": ref, "sha": sha})
        if resp.status_code == 422:
            message = _error_message(resp, "")
            if "already exists" in message.lower() or not message:
                raise ConflictError(exists)
            raise UpstreamError(message)
        self._check(resp, what)

    def create_branch_ref(self, branch: str, target_sha: str) -> None:
        self._create_ref(f"refs/heads/{branch}", target_sha, f"create branch '{branch}'",
                         f"Branch '{branch}' already exists.")

    def delete_branch_ref(self, branch: str, expected_sha: str | None = None) -> None:
        # The refs API has no compare-and-delete; re-read the head instead.
        if expected_sha is not None and self.get_branch_head_sha(branch) != expected_sha:
            raise StaleBranchError(f"Branch '{branch}' has moved since it was read.")
        what = f"delete branch '{branch}'"
        resp = self._request("DELETE", f"git/refs/heads/{quote(branch, safe='/')}", what=what)
        if resp.status_code == 422:
            raise NotFoundError(f"Branch '{branch}' not found.")
        if resp.status_code != 204:
            self._check(resp, what, not_found=f"Branch '{branch}' not found.")

    def create_tag_ref(self, name: str, target_sha: str) -> None:
        self._create_ref(f"refs/tags/{name}", target_sha, f"create tag '{name}'",
                         f"Tag '{name}' already exists.")
