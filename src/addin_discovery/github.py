"""GitHub REST API access for the discovery pipeline.

Every stage talks to repositories through the :class:`RepositoryContentProvider`
protocol; :class:`GitHubClient` is the production implementation built on a
``requests`` session. A 404 surfaces as :class:`RepositoryNotFoundError` so
stages can tell "the project does not exist" apart from other failures.

Authentication uses the ``GITHUB_TOKEN`` environment variable (see
:mod:`addin_discovery.config`); without a token the anonymous rate limit
applies.
"""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import requests

from addin_discovery.__version__ import __version__ as VERSION
from addin_discovery.exceptions import RemoteServiceError, RepositoryNotFoundError
from addin_discovery.network_utils import RetryPolicy, status_code_of, with_retries
from addin_discovery.rate_limit import (
    GITHUB_ANONYMOUS,
    GITHUB_AUTHENTICATED,
    RateLimiter,
    RateLimiterConfig,
    get_rate_limiter,
)
from addin_discovery.secrets import SecretStr

logger = logging.getLogger(__name__)

API_ROOT = "https://api.github.com"
DEFAULT_CONNECT_TIMEOUT = 15
DEFAULT_READ_TIMEOUT = 60
DEFAULT_TIMEOUT = (DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT)

CONTENT_TYPE_FILE = "file"
CONTENT_TYPE_DIR = "dir"


@dataclass(frozen=True)
class ContentEntry:
    name: str
    path: str
    type: str
    html_url: str | None = None

    @property
    def is_file(self) -> bool:
        return self.type == CONTENT_TYPE_FILE

    @property
    def is_dir(self) -> bool:
        return self.type == CONTENT_TYPE_DIR


@dataclass(frozen=True)
class Issue:
    number: int
    title: str
    html_url: str
    creator: str | None = None
    is_pull_request: bool = False

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Issue:
        return cls(
            number=int(payload["number"]),
            title=str(payload.get("title") or ""),
            html_url=str(payload.get("html_url") or ""),
            creator=(payload.get("user") or {}).get("login"),
            is_pull_request="pull_request" in payload or "head" in payload,
        )


class RepositoryContentProvider(Protocol):
    def list_directory(self, owner: str, repo: str, path: str = "") -> list[ContentEntry]: ...

    def get_file_content(self, owner: str, repo: str, path: str) -> bytes: ...

    def get_archive(self, owner: str, repo: str) -> bytes: ...

    def find_issues_by_creator(self, owner: str, repo: str, creator: str) -> list[Issue]: ...

    def create_issue(self, owner: str, repo: str, title: str, body: str) -> Issue: ...

    def create_branch(self, owner: str, repo: str, branch: str) -> str: ...

    def create_or_update_file(
        self, owner: str, repo: str, path: str, content: bytes, message: str, branch: str
    ) -> None: ...

    def open_pull_request(
        self, owner: str, repo: str, title: str, head: str, base: str, body: str
    ) -> Issue: ...

    def get_default_branch(self, owner: str, repo: str) -> str: ...

    def get_authenticated_login(self) -> str | None: ...


def _quote_path(path: str) -> str:
    return quote(path.strip("/"), safe="/")


class GitHubClient:
    """:class:`RepositoryContentProvider` over the GitHub REST API v3.

    Args:
        token: Personal access token, or ``None`` for anonymous access
        session: Optional preconfigured ``requests.Session``
        rate_limiter: Shared limiter; defaults to the process-wide "github" one
        max_attempts: Attempts per request for retryable failures
        timeout: ``(connect, read)`` timeout in seconds for each request
    """

    def __init__(
        self,
        token: SecretStr | str | None = None,
        *,
        session: requests.Session | None = None,
        rate_limiter: RateLimiter | None = None,
        rate_limit: RateLimiterConfig | None = None,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        timeout: tuple[float, float] = DEFAULT_TIMEOUT,
        api_root: str = API_ROOT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._token = token if isinstance(token, SecretStr) else SecretStr(token)
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "User-Agent": f"addin-discovery/{VERSION}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        if self._token:
            self._session.headers["Authorization"] = f"Bearer {self._token.reveal()}"
        default_limit = GITHUB_AUTHENTICATED if self._token else GITHUB_ANONYMOUS
        self._rate_limiter = rate_limiter or get_rate_limiter("github", rate_limit or default_limit)
        self._retry_policy = RetryPolicy(max_attempts=max_attempts, backoff_base=backoff_base)
        self._timeout = timeout
        self._api_root = api_root.rstrip("/")
        self._sleep = sleep
        self._login: str | None = None

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        url = f"{self._api_root}/{path.lstrip('/')}"

        def _send() -> requests.Response:
            self._rate_limiter.acquire()
            response = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self._timeout,
            )
            response.raise_for_status()
            return response

        def _log_retry(attempt: int, exc: Exception) -> None:
            logger.warning("GitHub request %s %s failed (attempt %d): %s", method, path, attempt, exc)

        try:
            return with_retries(
                _send,
                self._retry_policy,
                on_retry=_log_retry,
                sleep=self._sleep,
            )
        except requests.exceptions.HTTPError as exc:
            status = status_code_of(exc)
            context = {"method": method, "path": path, "status": status}
            if status == 404:
                raise RepositoryNotFoundError(f"not found: {path}", context=context) from exc
            raise RemoteServiceError(f"GitHub returned HTTP {status} for {path}", context=context) from exc
        except requests.exceptions.RequestException as exc:
            raise RemoteServiceError(
                f"GitHub request failed for {path}: {exc}", context={"method": method, "path": path}
            ) from exc

    def _paginate(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            page_params = {**(params or {}), "per_page": 100, "page": page}
            batch = self._request("GET", path, params=page_params).json()
            if not isinstance(batch, list):
                break
            items.extend(batch)
            if len(batch) < 100:
                break
            page += 1
        return items

    def list_directory(self, owner: str, repo: str, path: str = "") -> list[ContentEntry]:
        endpoint = f"repos/{owner}/{repo}/contents"
        if path.strip("/"):
            endpoint = f"{endpoint}/{_quote_path(path)}"
        payload = self._request("GET", endpoint).json()
        if isinstance(payload, dict):
            # a file path returns a single object rather than a listing
            payload = [payload]
        return [
            ContentEntry(
                name=str(item.get("name") or ""),
                path=str(item.get("path") or ""),
                type=str(item.get("type") or ""),
                html_url=item.get("html_url"),
            )
            for item in payload
        ]

    def get_file_content(self, owner: str, repo: str, path: str) -> bytes:
        response = self._request(
            "GET",
            f"repos/{owner}/{repo}/contents/{_quote_path(path)}",
            headers={"Accept": "application/vnd.github.raw"},
        )
        return response.content

    def get_archive(self, owner: str, repo: str) -> bytes:
        return self._request("GET", f"repos/{owner}/{repo}/zipball").content

    def get_default_branch(self, owner: str, repo: str) -> str:
        payload = self._request("GET", f"repos/{owner}/{repo}").json()
        return str(payload.get("default_branch") or "master")

    def find_issues_by_creator(self, owner: str, repo: str, creator: str) -> list[Issue]:
        items = self._paginate(
            f"repos/{owner}/{repo}/issues",
            {"creator": creator, "state": "open", "sort": "created", "direction": "desc"},
        )
        return [Issue.from_api(item) for item in items]

    def create_issue(self, owner: str, repo: str, title: str, body: str) -> Issue:
        payload = self._request(
            "POST", f"repos/{owner}/{repo}/issues", json_body={"title": title, "body": body}
        ).json()
        return Issue.from_api(payload)

    def create_branch(self, owner: str, repo: str, branch: str) -> str:
        """Create ``branch`` from the head of the default branch; returns the base branch name."""
        base = self.get_default_branch(owner, repo)
        ref = self._request("GET", f"repos/{owner}/{repo}/git/ref/heads/{quote(base, safe='')}").json()
        sha = (ref.get("object") or {}).get("sha")
        if not sha:
            raise RemoteServiceError(f"unable to resolve the head of {owner}/{repo}@{base}")
        self._request(
            "POST",
            f"repos/{owner}/{repo}/git/refs",
            json_body={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        return base

    def create_or_update_file(
        self, owner: str, repo: str, path: str, content: bytes, message: str, branch: str
    ) -> None:
        endpoint = f"repos/{owner}/{repo}/contents/{_quote_path(path)}"
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        try:
            existing = self._request("GET", endpoint, params={"ref": branch}).json()
            if isinstance(existing, dict) and existing.get("sha"):
                body["sha"] = existing["sha"]
        except RepositoryNotFoundError:
            pass
        self._request("PUT", endpoint, json_body=body)

    def open_pull_request(
        self, owner: str, repo: str, title: str, head: str, base: str, body: str
    ) -> Issue:
        payload = self._request(
            "POST",
            f"repos/{owner}/{repo}/pulls",
            json_body={"title": title, "head": head, "base": base, "body": body},
        ).json()
        return Issue.from_api(payload)

    def get_authenticated_login(self) -> str | None:
        if not self._token:
            return None
        if self._login is None:
            self._login = str(self._request("GET", "user").json().get("login") or "") or None
        return self._login
