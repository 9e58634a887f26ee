from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from addin_discovery.__version__ import __version__ as VERSION
from addin_discovery.network_utils import RetryPolicy, with_retries

logger = logging.getLogger(__name__)

NUGET_HOSTS = {"nuget.org", "www.nuget.org"}
PROJECT_LINK_SELECTOR = 'a[data-track="outbound-project-url"]'


def is_nuget_url(url: str | None) -> bool:
    if not url:
        return False
    return (urlparse(url).hostname or "").lower() in NUGET_HOSTS


class UrlNormalizer(Protocol):
    def resolve_canonical_project_url(self, url: str) -> str: ...


def extract_project_url(html: str) -> str | None:
    """The "Project website" link of a NuGet gallery package page."""
    soup = BeautifulSoup(html, "html.parser")
    link = soup.select_one(PROJECT_LINK_SELECTOR)
    if link is None:
        return None
    href = (link.get("href") or "").strip()
    return href or None


class NuGetUrlResolver:
    """Follows a NuGet package page to the project URL it advertises.

    Any URL that is not a NuGet page, or a page without a project link,
    is returned unchanged. HTTP failures propagate as ``requests`` exceptions.
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        timeout: tuple[float, float] = (15, 60),
        max_attempts: int = 3,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": f"addin-discovery/{VERSION}"})
        self._timeout = timeout
        self._retry_policy = RetryPolicy(max_attempts=max_attempts)

    def _fetch(self, url: str) -> str:
        def _get() -> str:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
            return response.text

        return with_retries(_get, self._retry_policy)

    def resolve_canonical_project_url(self, url: str) -> str:
        if not is_nuget_url(url):
            return url
        project_url = extract_project_url(self._fetch(url))
        if project_url is None:
            logger.debug("No project link on %s", url)
            return url
        return project_url
