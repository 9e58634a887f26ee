"""Records threaded through the discovery pipeline and their JSON form."""

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Any
from urllib.parse import urlparse


class DiscoverySource(str, Enum):
    YAML_LISTING = "YamlListing"
    CURATED_LISTING = "CuratedListing"


@dataclasses.dataclass(frozen=True)
class CakeVersion:
    """A Cake release addins are compared against."""

    version: str
    required_platform: str
    optional_platforms: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CakeVersion:
        return cls(
            version=str(d["version"]),
            required_platform=str(d["required_platform"]),
            optional_platforms=tuple(str(p) for p in d.get("optional_platforms") or ()),
        )


@dataclasses.dataclass(frozen=True)
class Reference:
    id: str
    version: str
    is_private: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "version": self.version, "is_private": self.is_private}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Reference:
        return cls(id=str(d["id"]), version=str(d.get("version") or ""), is_private=bool(d.get("is_private")))


@dataclasses.dataclass
class DependencyAnalysis:
    current_version: str | None = None
    is_up_to_date: bool = True
    is_private_reference: bool = False


@dataclasses.dataclass
class AnalysisResult:
    dependencies: dict[str, DependencyAnalysis] = dataclasses.field(default_factory=dict)
    targets_expected_platform: bool = False
    uses_expected_icon: bool = False
    analyzed: bool = False
    notes: list[str] = dataclasses.field(default_factory=list)

    def add_note(self, stage: str, message: str) -> None:
        # one line per note, the first line is what the report shows
        text = " ".join(str(message).split()) or "unknown error"
        self.notes.append(f"{stage}: {text}")

    @property
    def has_notes(self) -> bool:
        return bool(self.notes)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> AnalysisResult:
        d = d or {}
        return cls(
            dependencies={
                str(key): DependencyAnalysis(**value) for key, value in (d.get("dependencies") or {}).items()
            },
            targets_expected_platform=bool(d.get("targets_expected_platform")),
            uses_expected_icon=bool(d.get("uses_expected_icon")),
            analyzed=bool(d.get("analyzed")),
            notes=[str(n) for n in d.get("notes") or []],
        )


def derive_repo_info(url: str | None) -> tuple[str | None, str | None]:
    """Owner and name of a GitHub repository URL, ``(None, None)`` for any other URL."""
    if not url:
        return None, None
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host not in {"github.com", "www.github.com", "api.github.com"}:
        return None, None
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) >= 3 and parts[0].lower() == "repos":
        parts = parts[1:]
    if len(parts) < 2:
        return None, None
    name = parts[1]
    if name.lower().endswith(".git"):
        name = name[: -len(".git")]
    return parts[0] or None, name or None


@dataclasses.dataclass
class PackageRecord:
    name: str
    discovery_source: DiscoverySource
    repository_url: str | None = None
    repository_owner: str | None = None
    repository_name: str | None = None
    solution_path: str | None = None
    project_paths: list[str] | None = None
    references: list[Reference] | None = None
    target_platforms: list[str] | None = None
    icon_url: str | None = None
    issue_number: int | None = None
    issue_url: str | None = None
    pull_request_number: int | None = None
    pull_request_url: str | None = None
    analysis: AnalysisResult = dataclasses.field(default_factory=AnalysisResult)

    def __post_init__(self) -> None:
        if self.repository_owner is None and self.repository_name is None:
            self.repository_owner, self.repository_name = derive_repo_info(self.repository_url)

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def is_linked(self) -> bool:
        return bool(self.repository_owner) and bool(self.repository_name)

    def set_repository_url(self, url: str | None) -> None:
        self.repository_url = url
        self.repository_owner, self.repository_name = derive_repo_info(url)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "discovery_source": self.discovery_source.value,
            "repository_url": self.repository_url,
            "repository_owner": self.repository_owner,
            "repository_name": self.repository_name,
            "solution_path": self.solution_path,
            "project_paths": self.project_paths,
            "references": None if self.references is None else [r.to_dict() for r in self.references],
            "target_platforms": self.target_platforms,
            "icon_url": self.icon_url,
            "issue_number": self.issue_number,
            "issue_url": self.issue_url,
            "pull_request_number": self.pull_request_number,
            "pull_request_url": self.pull_request_url,
            "analysis": self.analysis.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PackageRecord:
        references = d.get("references")
        return cls(
            name=str(d["name"]),
            discovery_source=DiscoverySource(d.get("discovery_source", DiscoverySource.YAML_LISTING.value)),
            repository_url=d.get("repository_url"),
            repository_owner=d.get("repository_owner"),
            repository_name=d.get("repository_name"),
            solution_path=d.get("solution_path"),
            project_paths=None if d.get("project_paths") is None else list(d["project_paths"]),
            references=None if references is None else [Reference.from_dict(r) for r in references],
            target_platforms=None if d.get("target_platforms") is None else list(d["target_platforms"]),
            icon_url=d.get("icon_url"),
            issue_number=d.get("issue_number"),
            issue_url=d.get("issue_url"),
            pull_request_number=d.get("pull_request_number"),
            pull_request_url=d.get("pull_request_url"),
            analysis=AnalysisResult.from_dict(d.get("analysis")),
        )
