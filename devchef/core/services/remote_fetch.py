"""
Remote metadata fetcher — read one file (or probe one folder) from a
remote repository without cloning it.

Lookups run through an ordered list of strategies. Each strategy
returns a tagged ``FetchResult``; the fetcher walks the list until one
answers success, not-found or fatal. Retryable failures fall through
to the next strategy, and running out of strategies raises
``FetchExhausted`` with every tier's error.

File strategies:
    1. GitHub contents API (token required)
    2. raw.githubusercontent.com
    3. shallow git fetch (any host)

Folder strategies:
    1. GitHub contents API, authenticated
    2. GitHub contents API, anonymous
    3. shallow git fetch
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests

from devchef.adapters.vcs.git import GitClient
from devchef.core.errors import (
    DevchefError,
    ExternalProcessFailure,
    FetchExhausted,
    RemoteRejection,
    TransportFailure,
)

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
GITHUB_RAW = "https://raw.githubusercontent.com"

_GITHUB_RE = re.compile(r"github\.com[:/]+([^/]+)/([^/]+?)(?:\.git)?/?$")

_HTTP_TIMEOUT = 20


# ═══════════════════════════════════════════════════════════════════
#  Tagged results
# ═══════════════════════════════════════════════════════════════════


class Outcome(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass
class FetchResult:
    """What one strategy had to say about one lookup."""

    outcome: Outcome
    value: Any = None
    error: DevchefError | None = None

    @classmethod
    def success(cls, value: Any) -> FetchResult:
        return cls(Outcome.SUCCESS, value=value)

    @classmethod
    def not_found(cls) -> FetchResult:
        return cls(Outcome.NOT_FOUND)

    @classmethod
    def retryable(cls, error: DevchefError) -> FetchResult:
        return cls(Outcome.RETRYABLE, error=error)

    @classmethod
    def fatal(cls, error: DevchefError) -> FetchResult:
        return cls(Outcome.FATAL, error=error)


@dataclass(frozen=True)
class RepoLocation:
    """A repository URL, plus owner/name when it is hosted on GitHub."""

    url: str
    owner: str | None = None
    name: str | None = None

    @property
    def is_github(self) -> bool:
        return self.owner is not None

    @classmethod
    def parse(cls, url: str) -> RepoLocation:
        m = _GITHUB_RE.search(url.strip())
        if not m:
            return cls(url=url)
        return cls(url=url, owner=m.group(1), name=m.group(2))


# A strategy returns None when it does not apply to the repo at hand
Strategy = Callable[[RepoLocation, str, str], "FetchResult | None"]


def classify_status(status: int, url: str) -> FetchResult | None:
    """Map a non-200 HTTP status to a tagged result (None for 200)."""
    if status == 200:
        return None
    if status == 404:
        return FetchResult.not_found()
    if status in (400, 422):
        # Malformed request; every other tier would be asked the same thing
        return FetchResult.fatal(RemoteRejection(f"HTTP {status} from {url}", status))
    if status == 401:
        reason = "authentication failed, check GITHUB_TOKEN"
    elif status in (403, 429):
        reason = "rate limited or forbidden"
    elif status >= 500:
        reason = "server error"
    else:
        reason = "unexpected status"
    return FetchResult.retryable(RemoteRejection(f"HTTP {status} from {url} ({reason})", status))


# ═══════════════════════════════════════════════════════════════════
#  Fetcher
# ═══════════════════════════════════════════════════════════════════


class RemoteFetcher:
    """Fetch plugin manifests and probe folders on remote repositories."""

    def __init__(
        self,
        git: GitClient,
        session: requests.Session | None = None,
        token: str | None = None,
    ):
        self.git = git
        self.session = session or requests.Session()
        self.token = token or None

        self.file_strategies: list[tuple[str, Strategy]] = [
            ("github-api", self._file_via_api),
            ("github-raw", self._file_via_raw),
            ("git-shallow", self._file_via_git),
        ]
        self.folder_strategies: list[tuple[str, Strategy]] = [
            ("github-api", self._folder_via_api_authenticated),
            ("github-api-anonymous", self._folder_via_api_anonymous),
            ("git-shallow", self._folder_via_git),
        ]

    # ── Public API ──────────────────────────────────────────────

    def fetch_file(self, repo_url: str, ref: str, path: str) -> str | None:
        """Contents of *path* at *ref*, or None if the file does not exist.

        Raises:
            FetchExhausted: every applicable strategy failed.
            RemoteRejection: a strategy returned a fatal rejection.
        """
        what = f"{path} at {ref} in {repo_url}"
        return self._run_chain(what, self.file_strategies, RepoLocation.parse(repo_url), ref, path)

    def folder_exists(self, repo_url: str, ref: str, path: str) -> bool:
        what = f"folder {path} at {ref} in {repo_url}"
        found = self._run_chain(what, self.folder_strategies, RepoLocation.parse(repo_url), ref, path)
        return bool(found)

    def branch_or_tag_exists(self, repo_url: str, ref: str) -> bool:
        return self.git.ref_exists_remotely(repo_url, ref)

    def _run_chain(
        self,
        what: str,
        strategies: list[tuple[str, Strategy]],
        repo: RepoLocation,
        ref: str,
        path: str,
    ) -> Any:
        errors: list[str] = []
        for name, strategy in strategies:
            result = strategy(repo, ref, path)
            if result is None:
                continue
            if result.outcome is Outcome.SUCCESS:
                logger.debug("Fetched %s via %s", what, name)
                return result.value
            if result.outcome is Outcome.NOT_FOUND:
                logger.debug("%s not found (via %s)", what, name)
                return None
            if result.outcome is Outcome.FATAL:
                assert result.error is not None
                raise result.error
            errors.append(f"{name}: {result.error}")
            logger.info("Fetching %s via %s failed (%s), trying next strategy", what, name, result.error)
        raise FetchExhausted(what, errors)

    # ── HTTP helpers ────────────────────────────────────────────

    def _get(self, url: str, *, auth: bool, params: dict | None = None, accept: str | None = None):
        headers = {}
        if auth and self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if accept:
            headers["Accept"] = accept
        logger.debug("GET %s params=%s", url, params)
        return self.session.get(url, headers=headers, params=params, timeout=_HTTP_TIMEOUT)

    def _contents_url(self, repo: RepoLocation, path: str) -> str:
        return f"{GITHUB_API}/repos/{repo.owner}/{repo.name}/contents/{path.strip('/')}"

    def _api_get(self, repo: RepoLocation, ref: str, path: str, auth: bool) -> FetchResult:
        url = self._contents_url(repo, path)
        try:
            resp = self._get(url, auth=auth, params={"ref": ref}, accept="application/vnd.github+json")
        except requests.RequestException as e:
            return FetchResult.retryable(TransportFailure(f"{url}: {e}"))
        failure = classify_status(resp.status_code, url)
        if failure is not None:
            return failure
        try:
            return FetchResult.success(resp.json())
        except ValueError:
            return FetchResult.retryable(RemoteRejection(f"Malformed JSON from {url}", resp.status_code))

    # ── File strategies ─────────────────────────────────────────

    def _file_via_api(self, repo: RepoLocation, ref: str, path: str) -> FetchResult | None:
        if not repo.is_github or not self.token:
            return None
        result = self._api_get(repo, ref, path, auth=True)
        if result.outcome is not Outcome.SUCCESS:
            return result
        body = result.value
        if not isinstance(body, dict) or "content" not in body:
            return FetchResult.retryable(RemoteRejection(f"Unexpected API response for {path}"))
        try:
            raw = base64.b64decode(body["content"].replace("\n", ""), validate=True)
            return FetchResult.success(raw.decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError) as e:
            return FetchResult.retryable(RemoteRejection(f"Cannot decode API content for {path}: {e}"))

    def _file_via_raw(self, repo: RepoLocation, ref: str, path: str) -> FetchResult | None:
        if not repo.is_github:
            return None
        url = f"{GITHUB_RAW}/{repo.owner}/{repo.name}/{ref}/{path.lstrip('/')}"
        try:
            resp = self._get(url, auth=True)
        except requests.RequestException as e:
            return FetchResult.retryable(TransportFailure(f"{url}: {e}"))
        failure = classify_status(resp.status_code, url)
        if failure is not None:
            return failure
        return FetchResult.success(resp.text)

    def _file_via_git(self, repo: RepoLocation, ref: str, path: str) -> FetchResult | None:
        try:
            content = self.git.read_file_shallow(repo.url, ref, path)
        except ExternalProcessFailure as e:
            return FetchResult.retryable(e)
        if content is None:
            return FetchResult.not_found()
        return FetchResult.success(content)

    # ── Folder strategies ───────────────────────────────────────

    def _folder_via_api(self, repo: RepoLocation, ref: str, path: str, auth: bool) -> FetchResult:
        result = self._api_get(repo, ref, path, auth=auth)
        if result.outcome is not Outcome.SUCCESS:
            return result
        # The contents API answers a folder with a list, a file with a dict
        body = result.value
        if isinstance(body, list):
            return FetchResult.success(bool(body))
        return FetchResult.success(False)

    def _folder_via_api_authenticated(self, repo: RepoLocation, ref: str, path: str) -> FetchResult | None:
        if not repo.is_github or not self.token:
            return None
        return self._folder_via_api(repo, ref, path, auth=True)

    def _folder_via_api_anonymous(self, repo: RepoLocation, ref: str, path: str) -> FetchResult | None:
        if not repo.is_github:
            return None
        return self._folder_via_api(repo, ref, path, auth=False)

    def _folder_via_git(self, repo: RepoLocation, ref: str, path: str) -> FetchResult | None:
        try:
            kind = self.git.path_type_shallow(repo.url, ref, path)
        except ExternalProcessFailure as e:
            return FetchResult.retryable(e)
        if kind is None:
            return FetchResult.not_found()
        return FetchResult.success(kind == "tree")
