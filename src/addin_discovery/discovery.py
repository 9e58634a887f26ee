"""The two discovery sources.

Source A is the folder of ``*.yml`` descriptors on the Cake website, one file
per addin with ``Name`` and ``Repository`` keys. Source B is the curated
``Status.md`` listing whose ``# Recipes``, ``# Modules`` and ``# Addins``
sections each hold a markdown table starting with a ``[Name](url)`` cell.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor

import yaml

from addin_discovery.config import SourceLocation
from addin_discovery.exceptions import DiscoveryError, YamlParseError
from addin_discovery.github import ContentEntry, RepositoryContentProvider
from addin_discovery.models import DiscoverySource, PackageRecord

logger = logging.getLogger(__name__)

CURATED_SECTIONS = ("Recipes", "Modules", "Addins")
TABLE_HEADER_ROWS = 2

_LINK_CELL = re.compile(r"\[(?P<name>[^\]]+)\]\((?P<url>[^)\s]+)\)")


def parse_addin_yaml(text: str | bytes, *, path: str = "<yaml>") -> PackageRecord | None:
    """Record for one website descriptor, ``None`` when it has no name."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise YamlParseError(f"YAML parse error in {path}: {exc}", context={"path": path}) from exc
    if not isinstance(data, dict):
        return None
    name = str(data.get("Name") or "").strip()
    if not name:
        return None
    repository = str(data.get("Repository") or "").strip() or None
    return PackageRecord(name=name, discovery_source=DiscoverySource.YAML_LISTING, repository_url=repository)


def discover_yaml_listing(
    provider: RepositoryContentProvider,
    location: SourceLocation,
    *,
    max_workers: int | None = 8,
) -> list[PackageRecord]:
    entries = provider.list_directory(location.owner, location.repo, location.path)
    yaml_files = [e for e in entries if e.is_file and e.name.lower().endswith(".yml")]
    logger.info("Found %d addin descriptors in %s/%s/%s", len(yaml_files), location.owner, location.repo, location.path)

    def _load(entry: ContentEntry) -> PackageRecord | None:
        try:
            content = provider.get_file_content(location.owner, location.repo, entry.path)
            return parse_addin_yaml(content, path=entry.path)
        except DiscoveryError as exc:
            logger.warning("Skipping %s: %s", entry.path, exc, extra=exc.as_log_fields())
            return None

    if not yaml_files:
        return []
    with ThreadPoolExecutor(max_workers=max_workers or len(yaml_files)) as executor:
        loaded = list(executor.map(_load, yaml_files))
    return [record for record in loaded if record is not None]


def _section_lines(markdown: str, title: str) -> list[str]:
    lines: list[str] = []
    inside = False
    heading = f"# {title}".lower()
    for raw in markdown.splitlines():
        line = raw.strip()
        if inside:
            if line.startswith("#"):
                break
            if line:
                lines.append(line)
        elif line.lower() == heading:
            inside = True
    return lines


def parse_curated_listing(markdown: str, sections: tuple[str, ...] = CURATED_SECTIONS) -> list[PackageRecord]:
    records: list[PackageRecord] = []
    for title in sections:
        rows = _section_lines(markdown, title)[TABLE_HEADER_ROWS:]
        for row in rows:
            cells = [c.strip() for c in row.split("|") if c.strip()]
            match = _LINK_CELL.search(cells[0]) if cells else None
            if match is None:
                logger.debug("Ignoring row without a link in %s: %s", title, row)
                continue
            records.append(
                PackageRecord(
                    name=match.group("name").strip(),
                    discovery_source=DiscoverySource.CURATED_LISTING,
                    repository_url=match.group("url").strip(),
                )
            )
    return records


def discover_curated_listing(
    provider: RepositoryContentProvider,
    location: SourceLocation,
) -> list[PackageRecord]:
    content = provider.get_file_content(location.owner, location.repo, location.path)
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig", errors="replace")
    records = parse_curated_listing(content)
    logger.info("Found %d packages in %s/%s/%s", len(records), location.owner, location.repo, location.path)
    return records
