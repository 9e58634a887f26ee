"""Collapse the per-source discovery lists into one record per package name."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from addin_discovery.models import PackageRecord

logger = logging.getLogger(__name__)


def select_preferred(group: list[PackageRecord]) -> PackageRecord | None:
    """The first linked record, else the first with any URL, else ``None``."""
    for record in group:
        if record.is_linked:
            return record
    for record in group:
        if record.repository_url:
            return record
    return None


def merge_records(records: Iterable[PackageRecord]) -> list[PackageRecord]:
    groups: dict[str, list[PackageRecord]] = {}
    for record in records:
        groups.setdefault(record.key, []).append(record)

    merged: list[PackageRecord] = []
    for key, group in groups.items():
        chosen = select_preferred(group)
        if chosen is None:
            logger.info("Dropping %s: no repository URL in any source", group[0].name)
            continue
        if len(group) > 1:
            logger.debug("Merged %d records for %s, kept %s", len(group), key, chosen.discovery_source.value)
        merged.append(chosen)
    return merged
