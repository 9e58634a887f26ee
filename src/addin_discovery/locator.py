from __future__ import annotations

import logging

from addin_discovery.github import ContentEntry, RepositoryContentProvider

logger = logging.getLogger(__name__)

SOLUTION_EXTENSION = ".sln"
PREFERRED_FOLDERS = ("source", "src")


def _is_solution(entry: ContentEntry) -> bool:
    return entry.is_file and entry.name.lower().endswith(SOLUTION_EXTENSION)


def find_solution_file(
    provider: RepositoryContentProvider,
    owner: str,
    repo: str,
    folder: str | None = None,
) -> ContentEntry | None:
    """Depth-first search for a ``.sln`` file, returning the first one found.

    Solutions directly in ``folder`` win (alphabetically first), then the
    ``source``/``src`` subfolders are searched, then every other subfolder in
    listing order. :class:`RepositoryNotFoundError` from the provider
    propagates to the caller.
    """
    entries = provider.list_directory(owner, repo, folder or "")

    solutions = sorted((e for e in entries if _is_solution(e)), key=lambda e: e.name.lower())
    if solutions:
        return solutions[0]

    folders = [e for e in entries if e.is_dir]
    preferred = [e for e in folders if e.name.lower() in PREFERRED_FOLDERS]
    others = [e for e in folders if e.name.lower() not in PREFERRED_FOLDERS]
    for subfolder in [*preferred, *others]:
        logger.debug("Searching %s/%s:%s for a solution file", owner, repo, subfolder.path)
        found = find_solution_file(provider, owner, repo, subfolder.path)
        if found is not None:
            return found
    return None
