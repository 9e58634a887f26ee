from __future__ import annotations

import dataclasses
import re
import threading
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from addin_discovery.config import DiscoveryConfig
from addin_discovery.github import Issue, RepositoryContentProvider
from addin_discovery.models import CakeVersion, PackageRecord
from addin_discovery.secrets import SecretStr
from addin_discovery.url_normalizer import UrlNormalizer

MARKDOWN_REPORT_FILENAME = "AddinDiscoveryReport.md"

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def safe_folder_name(name: str) -> str:
    cleaned = _UNSAFE_NAME.sub("_", name).strip("._")
    return cleaned or "_"


@dataclasses.dataclass
class DiscoveryOptions:
    work_dir: Path
    clear_cache: bool = False
    github_token: SecretStr = dataclasses.field(default_factory=lambda: SecretStr(None))
    max_workers: int | None = 8
    record_timeout: float = 300.0
    create_issues: bool = False
    submit_pull_requests: bool = False
    markdown_report: bool = False
    recommended_cake_version: str | None = None


@dataclasses.dataclass
class DiscoveryContext:
    """Everything one run shares: collaborators, options and the record arena.

    Records live in ``records`` keyed by id, and ``record_ids`` keeps their
    order. A stage replaces a record value only after its unit of work for
    that record succeeded; nothing else writes to the arena during a stage.
    """

    provider: RepositoryContentProvider
    normalizer: UrlNormalizer
    options: DiscoveryOptions
    config: DiscoveryConfig
    record_ids: list[str] = dataclasses.field(default_factory=list)
    records: dict[str, PackageRecord] = dataclasses.field(default_factory=dict)
    discovered: list[PackageRecord] = dataclasses.field(default_factory=list)
    resumed: bool = False
    _issue_cache: dict[tuple[str, str], list[Issue]] = dataclasses.field(default_factory=dict, repr=False)
    _lock: threading.Lock = dataclasses.field(default_factory=threading.Lock, repr=False)
    _login: str | None = dataclasses.field(default=None, repr=False)
    _login_resolved: bool = dataclasses.field(default=False, repr=False)

    @property
    def work_dir(self) -> Path:
        return self.options.work_dir

    @property
    def markdown_report_path(self) -> Path:
        return self.work_dir / MARKDOWN_REPORT_FILENAME

    @property
    def cake_version(self) -> CakeVersion:
        return self.config.cake_version(self.options.recommended_cake_version)

    def set_records(self, records: Iterable[PackageRecord]) -> None:
        self.record_ids = []
        self.records = {}
        for record in records:
            record_id = record.key
            if record_id in self.records:
                raise ValueError(f"duplicate record id {record_id!r}")
            self.record_ids.append(record_id)
            self.records[record_id] = record

    def iter_records(self) -> Iterator[PackageRecord]:
        for record_id in self.record_ids:
            yield self.records[record_id]

    def ordered_records(self) -> list[PackageRecord]:
        return list(self.iter_records())

    def replace_record(self, record_id: str, record: PackageRecord) -> None:
        if record_id not in self.records:
            raise KeyError(record_id)
        self.records[record_id] = record

    def record_folder(self, record: PackageRecord) -> Path:
        return self.work_dir / safe_folder_name(record.name)

    def actor_login(self) -> str | None:
        """Login of the authenticated GitHub user, resolved once per run."""
        with self._lock:
            if not self._login_resolved:
                self._login = self.provider.get_authenticated_login() if self.options.github_token else None
                self._login_resolved = True
            return self._login

    def issues_for(
        self, owner: str, repo: str, loader: Callable[[], list[Issue]]
    ) -> list[Issue]:
        key = (owner.lower(), repo.lower())
        with self._lock:
            cached = self._issue_cache.get(key)
        if cached is not None:
            return cached
        issues = loader()
        with self._lock:
            return self._issue_cache.setdefault(key, issues)

    def remember_issue(self, owner: str, repo: str, issue: Issue) -> None:
        key = (owner.lower(), repo.lower())
        with self._lock:
            self._issue_cache.setdefault(key, []).insert(0, issue)
