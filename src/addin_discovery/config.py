"""Run configuration: built-in defaults, optionally overridden by a YAML file.

The file is validated against ``schemas/discovery_config.schema.json`` before
it is merged over :data:`DEFAULT_CONFIG`. Example::

    recommended_cake_version: "0.28.0"
    sources:
      yaml_listing: {owner: cake-build, repo: website, path: addins}
    pipeline:
      max_workers: 4
      record_timeout: 120

The GitHub token is never read from the file; it comes from ``GITHUB_TOKEN``.
"""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass, field
from functools import cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator, FormatChecker, ValidationError

from addin_discovery.exceptions import ConfigValidationError, YamlParseError
from addin_discovery.models import CakeVersion
from addin_discovery.rate_limit import RateLimiterConfig
from addin_discovery.secrets import SecretStr
from addin_discovery.versioning import version_key

CONFIG_SCHEMA = "discovery_config"
GITHUB_TOKEN_ENV = "GITHUB_TOKEN"

DEFAULT_CONFIG: dict[str, Any] = {
    "cake_versions": [
        {"version": "0.26.0", "required_platform": "netstandard2.0", "optional_platforms": ["net46"]},
        {"version": "0.28.0", "required_platform": "netstandard2.0", "optional_platforms": ["net461"]},
        {"version": "0.33.0", "required_platform": "netstandard2.0", "optional_platforms": ["net461"]},
    ],
    "tracked_dependencies": ["Cake.Core", "Cake.Common"],
    "canonical_icon_url": "https://cdn.jsdelivr.net/gh/cake-contrib/graphics/png/cake-contrib-medium.png",
    "sources": {
        "yaml_listing": {"owner": "cake-build", "repo": "website", "path": "addins"},
        "curated_listing": {"owner": "cake-contrib", "repo": "home", "path": "Status.md"},
    },
    "github": {
        "rate_limit": {"capacity": 20.0, "refill_rate": 1.2},
        "max_attempts": 3,
    },
    "pipeline": {
        "max_workers": 8,
        "record_timeout": 300.0,
    },
}


@dataclass(frozen=True)
class SourceLocation:
    owner: str
    repo: str
    path: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SourceLocation:
        return cls(owner=str(d["owner"]), repo=str(d["repo"]), path=str(d.get("path") or ""))


@dataclass
class DiscoveryConfig:
    cake_versions: list[CakeVersion]
    recommended_cake_version: str
    tracked_dependencies: list[str]
    canonical_icon_url: str
    yaml_listing: SourceLocation
    curated_listing: SourceLocation
    rate_limit: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    github_max_attempts: int = 3
    max_workers: int | None = 8
    record_timeout: float = 300.0

    def cake_version(self, version: str | None = None) -> CakeVersion:
        """The configured :class:`CakeVersion` for ``version`` (default: the recommended one)."""
        wanted = version or self.recommended_cake_version
        for cake_version in self.cake_versions:
            if version_key(cake_version.version) == version_key(wanted):
                return cake_version
        raise ConfigValidationError(
            f"Cake version {wanted} is not configured",
            context={"version": wanted, "configured": [v.version for v in self.cake_versions]},
        )

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DiscoveryConfig:
        cake_versions = [CakeVersion.from_dict(v) for v in d["cake_versions"]]
        recommended = d.get("recommended_cake_version") or max(
            (v.version for v in cake_versions), key=version_key
        )
        pipeline = d.get("pipeline") or {}
        github = d.get("github") or {}
        config = cls(
            cake_versions=cake_versions,
            recommended_cake_version=str(recommended),
            tracked_dependencies=[str(t) for t in d["tracked_dependencies"]],
            canonical_icon_url=str(d["canonical_icon_url"]),
            yaml_listing=SourceLocation.from_dict(d["sources"]["yaml_listing"]),
            curated_listing=SourceLocation.from_dict(d["sources"]["curated_listing"]),
            rate_limit=RateLimiterConfig.from_dict(github.get("rate_limit")),
            github_max_attempts=int(github.get("max_attempts", 3)),
            max_workers=pipeline.get("max_workers", 8),
            record_timeout=float(pipeline.get("record_timeout", 300.0)),
        )
        # fail early on a recommended version that has no platform rules
        config.cake_version()
        return config


SCHEMA_ERRORS_SHOWN = 10


@cache
def load_schema(schema_name: str) -> dict[str, Any]:
    """JSON schema shipped in ``addin_discovery/schemas``."""
    resource = resources.files("addin_discovery") / "schemas" / f"{schema_name}.schema.json"
    if not resource.is_file():
        raise ConfigValidationError(f"Unknown config schema {schema_name!r}", context={"schema": schema_name})
    return json.loads(resource.read_text(encoding="utf-8"))


def _describe(error: ValidationError) -> dict[str, str]:
    return {"path": ".".join(map(str, error.absolute_path)) or "<root>", "message": error.message}


def validate_config(config: Any, schema_name: str = CONFIG_SCHEMA, *, config_path: Path | None = None) -> None:
    """Raise :class:`ConfigValidationError` listing the first schema violations."""
    checker = Draft7Validator(load_schema(schema_name), format_checker=FormatChecker())
    problems = [_describe(e) for e in sorted(checker.iter_errors(config), key=lambda e: list(e.absolute_path))]
    if not problems:
        return
    source = str(config_path) if config_path is not None else "<config>"
    shown = problems[:SCHEMA_ERRORS_SHOWN]
    summary = "; ".join(f"{p['path']}: {p['message']}" for p in shown)
    hidden = len(problems) - len(shown)
    if hidden:
        summary += f" (+{hidden} more)"
    raise ConfigValidationError(
        f"{source} does not match the {schema_name} schema: {summary}",
        context={"path": source, "schema": schema_name, "errors": shown, "truncated": hidden > 0},
    )


def read_yaml(path: Path, schema_name: str | None = None) -> Any:
    """Parse ``path``; an empty file reads as ``{}``."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigValidationError(
            f"Cannot read {path}: {exc.strerror or exc}", context={"path": str(path)}
        ) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise YamlParseError(f"Cannot parse {path}: {exc}", context={"path": str(path), "error": str(exc)}) from exc
    data = {} if data is None else data
    if schema_name is not None:
        validate_config(data, schema_name, config_path=path)
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(path: Path | None = None) -> DiscoveryConfig:
    """Defaults merged with the YAML file at ``path`` (when given)."""
    data = DEFAULT_CONFIG
    if path is not None:
        data = _deep_merge(DEFAULT_CONFIG, read_yaml(path, CONFIG_SCHEMA))
    return DiscoveryConfig.from_dict(data)


def resolve_github_token(environ: dict[str, str] | None = None) -> SecretStr:
    env = os.environ if environ is None else environ
    return SecretStr((env.get(GITHUB_TOKEN_ENV) or "").strip() or None)
