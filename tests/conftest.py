"""
Shared pytest fixtures for addin discovery tests.

Provides:
- An in-memory repository content provider
- A URL normalizer stub
- Discovery contexts rooted in ``tmp_path``
- A deterministic clock for rate limiter tests
"""

from __future__ import annotations

import io
import sys
import threading
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if SRC_ROOT.is_dir():
    sys.path.insert(0, str(SRC_ROOT))

from addin_discovery.config import DiscoveryConfig, load_config  # noqa: E402
from addin_discovery.context import DiscoveryContext, DiscoveryOptions  # noqa: E402
from addin_discovery.exceptions import RemoteServiceError, RepositoryNotFoundError  # noqa: E402
from addin_discovery.github import ContentEntry, Issue  # noqa: E402
from addin_discovery.secrets import SecretStr  # noqa: E402


# =============================================================================
# Collaborator fakes
# =============================================================================


class FakeRepositoryProvider:
    """Repositories held in memory as ``{(owner, repo): {path: bytes}}``.

    Folders are implied by file paths. Unknown repositories raise
    :class:`RepositoryNotFoundError`; paths listed in ``failing_paths`` raise
    :class:`RemoteServiceError`.
    """

    def __init__(self) -> None:
        self.repositories: dict[tuple[str, str], dict[str, bytes]] = {}
        self.archives: dict[tuple[str, str], bytes] = {}
        self.issues: dict[tuple[str, str], list[Issue]] = {}
        self.failing_paths: set[str] = set()
        self.login: str | None = "audit-bot"
        self.calls: list[tuple[str, ...]] = []
        self.created_issues: list[tuple[str, str, str, str]] = []
        self.created_branches: list[tuple[str, str, str]] = []
        self.written_files: list[tuple[str, str, str, bytes, str]] = []
        self.pull_requests: list[tuple[str, str, str, str, str]] = []
        self._next_number = 100
        self._lock = threading.Lock()

    def add_file(self, owner: str, repo: str, path: str, content: str | bytes) -> None:
        data = content.encode("utf-8") if isinstance(content, str) else content
        self.repositories.setdefault((owner, repo), {})[path.strip("/")] = data

    def add_repository(self, owner: str, repo: str) -> None:
        self.repositories.setdefault((owner, repo), {})

    def _files(self, owner: str, repo: str) -> dict[str, bytes]:
        try:
            return self.repositories[(owner, repo)]
        except KeyError:
            raise RepositoryNotFoundError(f"not found: repos/{owner}/{repo}") from None

    def list_directory(self, owner: str, repo: str, path: str = "") -> list[ContentEntry]:
        self.calls.append(("list_directory", owner, repo, path))
        files = self._files(owner, repo)
        prefix = f"{path.strip('/')}/" if path.strip("/") else ""
        entries: dict[str, ContentEntry] = {}
        for file_path in files:
            if not file_path.startswith(prefix):
                continue
            remainder = file_path[len(prefix):]
            name, _, rest = remainder.partition("/")
            entry_type = "dir" if rest else "file"
            entries.setdefault(name, ContentEntry(name=name, path=f"{prefix}{name}", type=entry_type))
        if prefix and not entries:
            raise RepositoryNotFoundError(f"not found: {path}")
        return list(entries.values())

    def get_file_content(self, owner: str, repo: str, path: str) -> bytes:
        self.calls.append(("get_file_content", owner, repo, path))
        if path in self.failing_paths:
            raise RemoteServiceError(f"GitHub returned HTTP 500 for {path}")
        files = self._files(owner, repo)
        try:
            return files[path.strip("/")]
        except KeyError:
            raise RepositoryNotFoundError(f"not found: {path}") from None

    def get_archive(self, owner: str, repo: str) -> bytes:
        self.calls.append(("get_archive", owner, repo))
        if (owner, repo) in self.archives:
            return self.archives[(owner, repo)]
        return make_zipball(f"{owner}-{repo}-abc123", self._files(owner, repo))

    def find_issues_by_creator(self, owner: str, repo: str, creator: str) -> list[Issue]:
        self.calls.append(("find_issues_by_creator", owner, repo, creator))
        return [i for i in self.issues.get((owner, repo), []) if i.creator == creator]

    def _issue(self, title: str, *, is_pull_request: bool, owner: str, repo: str) -> Issue:
        with self._lock:
            self._next_number += 1
            number = self._next_number
        kind = "pull" if is_pull_request else "issues"
        return Issue(
            number=number,
            title=title,
            html_url=f"https://github.com/{owner}/{repo}/{kind}/{number}",
            creator=self.login,
            is_pull_request=is_pull_request,
        )

    def create_issue(self, owner: str, repo: str, title: str, body: str) -> Issue:
        self.created_issues.append((owner, repo, title, body))
        return self._issue(title, is_pull_request=False, owner=owner, repo=repo)

    def create_branch(self, owner: str, repo: str, branch: str) -> str:
        self.created_branches.append((owner, repo, branch))
        return "main"

    def create_or_update_file(
        self, owner: str, repo: str, path: str, content: bytes, message: str, branch: str
    ) -> None:
        self.written_files.append((owner, repo, path, content, branch))

    def open_pull_request(
        self, owner: str, repo: str, title: str, head: str, base: str, body: str
    ) -> Issue:
        self.pull_requests.append((owner, repo, title, head, body))
        return self._issue(title, is_pull_request=True, owner=owner, repo=repo)

    def get_default_branch(self, owner: str, repo: str) -> str:
        return "main"

    def get_authenticated_login(self) -> str | None:
        return self.login


class FakeNormalizer:
    def __init__(self, mapping: dict[str, str] | None = None) -> None:
        self.mapping = mapping or {}
        self.calls: list[str] = []

    def resolve_canonical_project_url(self, url: str) -> str:
        self.calls.append(url)
        return self.mapping.get(url, url)


def make_zipball(root: str, files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(f"{root}/", b"")
        for path, content in files.items():
            archive.writestr(f"{root}/{path}", content)
    return buffer.getvalue()


# =============================================================================
# Descriptor samples
# =============================================================================


SDK_DESCRIPTOR = """<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <TargetFrameworks>netstandard2.0;net461</TargetFrameworks>
    <PackageIconUrl>https://cdn.jsdelivr.net/gh/cake-contrib/graphics/png/cake-contrib-medium.png</PackageIconUrl>
  </PropertyGroup>
  <ItemGroup>
    <PackageReference Include="Cake.Core" Version="0.33.0" PrivateAssets="All" />
    <PackageReference Include="Cake.Common" Version="0.33.0" PrivateAssets="All" />
  </ItemGroup>
</Project>
"""

SOLUTION_TEMPLATE = """Microsoft Visual Studio Solution File, Format Version 12.00
Project("{{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}}") = "{name}", "{name}\\{name}.csproj", "{{11111111-1111-1111-1111-111111111111}}"
EndProject
Project("{{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}}") = "{name}.Tests", "{name}.Tests\\{name}.Tests.csproj", "{{22222222-2222-2222-2222-222222222222}}"
EndProject
"""


def add_addin_repository(
    provider: FakeRepositoryProvider,
    owner: str,
    repo: str,
    *,
    descriptor: str = SDK_DESCRIPTOR,
    folder: str = "Source",
) -> None:
    """A conventional addin layout: ``<folder>/<repo>.sln`` and one project."""
    provider.add_file(owner, repo, "README.md", "# readme")
    provider.add_file(owner, repo, f"{folder}/{repo}.sln", SOLUTION_TEMPLATE.format(name=repo))
    provider.add_file(owner, repo, f"{folder}/{repo}/{repo}.csproj", descriptor)


# =============================================================================
# Context fixtures
# =============================================================================


@pytest.fixture
def fake_provider() -> FakeRepositoryProvider:
    return FakeRepositoryProvider()


@pytest.fixture
def fake_normalizer() -> FakeNormalizer:
    return FakeNormalizer()


@pytest.fixture
def discovery_config() -> DiscoveryConfig:
    return load_config()


@pytest.fixture
def make_context(
    tmp_path: Path,
    fake_provider: FakeRepositoryProvider,
    fake_normalizer: FakeNormalizer,
    discovery_config: DiscoveryConfig,
) -> Callable[..., DiscoveryContext]:
    """Build a context in ``tmp_path / "work"``; keyword arguments override options."""

    def _make(**overrides: Any) -> DiscoveryContext:
        options = DiscoveryOptions(work_dir=tmp_path / "work", github_token=SecretStr("ghp_test"), max_workers=4)
        for key, value in overrides.items():
            setattr(options, key, value)
        return DiscoveryContext(
            provider=fake_provider,
            normalizer=fake_normalizer,
            options=options,
            config=discovery_config,
        )

    return _make


# =============================================================================
# Rate limiter fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_rate_limiters_fixture() -> Generator[None, None, None]:
    """Reset shared rate limiters before and after each test."""
    from addin_discovery.rate_limit import reset_rate_limiters

    reset_rate_limiters()
    yield
    reset_rate_limiters()


@pytest.fixture
def deterministic_clock() -> Any:
    """Clock with a fake ``sleep`` that advances time instantly."""

    class DeterministicClock:
        def __init__(self, start: float = 0.0) -> None:
            self.time = start
            self.sleep_calls: list[float] = []

        def __call__(self) -> float:
            return self.time

        def advance(self, seconds: float) -> None:
            self.time += seconds

        def sleep(self, seconds: float) -> None:
            self.sleep_calls.append(seconds)
            self.advance(seconds)

    return DeterministicClock()


# =============================================================================
# Helper fixtures
# =============================================================================


@pytest.fixture
def sdk_descriptor() -> str:
    return SDK_DESCRIPTOR


@pytest.fixture
def addin_repository(fake_provider: FakeRepositoryProvider) -> Callable[..., None]:
    """Add a conventional addin repository to ``fake_provider``."""

    def _add(owner: str, repo: str, **kwargs: Any) -> None:
        add_addin_repository(fake_provider, owner, repo, **kwargs)

    return _add


@pytest.fixture
def zipball() -> Callable[[str, dict[str, bytes]], bytes]:
    return make_zipball
