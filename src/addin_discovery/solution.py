from __future__ import annotations

import posixpath
import re

# Project("{FAE04EC0-...}") = "Cake.Foo", "Source\Cake.Foo\Cake.Foo.csproj", "{GUID}"
_PROJECT_LINE = re.compile(
    r'^\s*Project\("\{[^}]*\}"\)\s*=\s*"(?P<name>[^"]*)"\s*,\s*"(?P<path>[^"]*)"',
    re.MULTILINE,
)


def parse_solution_projects(solution_text: str | bytes, solution_path: str) -> list[str]:
    """Repository paths of the non-test C# projects listed in a ``.sln`` file.

    Project paths in a solution are relative to the solution's folder and use
    backslashes; the result uses forward slashes from the repository root.
    """
    if isinstance(solution_text, bytes):
        solution_text = solution_text.decode("utf-8-sig", errors="replace")
    folder = posixpath.dirname(solution_path.replace("\\", "/"))
    paths: list[str] = []
    for match in _PROJECT_LINE.finditer(solution_text):
        relative = match.group("path").replace("\\", "/")
        if not relative.lower().endswith(".csproj") or is_test_project(relative):
            continue
        path = posixpath.normpath(posixpath.join(folder, relative)) if folder else posixpath.normpath(relative)
        if path not in paths:
            paths.append(path)
    return paths


def is_test_project(path: str) -> bool:
    return path.lower().endswith(".tests.csproj")
