"""Version parsing and the "is at least X" comparison used by the audit."""

from __future__ import annotations

import re

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")

# Sorts before every real version so a missing version wins ``min()``
_EMPTY_KEY: tuple[int, ...] = (-1,)


def format_version(version: str | None) -> str:
    """Keep at most three dot-separated components: ``0.26.0.0`` -> ``0.26.0``."""
    if not version:
        return ""
    return ".".join(version.strip().split(".")[:3])


def version_key(version: str | None) -> tuple[int, ...]:
    """Numeric (major, minor, patch) for ordering; missing or non-numeric parts are 0."""
    formatted = format_version(version)
    if not formatted:
        return _EMPTY_KEY
    components: list[int] = []
    for part in formatted.split("."):
        match = _LEADING_DIGITS.match(part)
        components.append(int(match.group(1)) if match else 0)
    while len(components) < 3:
        components.append(0)
    return tuple(components)


def min_version(versions: list[str]) -> str:
    """Lowest version in ``versions`` (an empty version counts as the lowest)."""
    if not versions:
        return ""
    return min(versions, key=version_key)


def is_up_to_date(current_version: str | None, desired_version: str) -> bool:
    """True when ``current_version`` is at least ``desired_version``.

    Components are compared left to right and the first differing component
    decides, so ``1.0.0`` is up to date against ``0.28.5``. An empty current
    version means there is no reference and is treated as up to date.
    """
    if not current_version or not current_version.strip():
        return True
    current = version_key(current_version)
    desired = version_key(desired_version)
    for have, want in zip(current, desired):
        if have < want:
            return False
        if have > want:
            return True
    return True
