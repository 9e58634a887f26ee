from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol

from addin_discovery.__version__ import __version__ as VERSION
from addin_discovery.models import DependencyAnalysis, PackageRecord

if TYPE_CHECKING:
    from addin_discovery.context import DiscoveryContext

GREEN_MARK = "✔"
RED_MARK = "✖"


class ReportRenderer(Protocol):
    def render(self, records: Sequence[PackageRecord], context: DiscoveryContext) -> str: ...


def _mark(ok: bool) -> str:
    return GREEN_MARK if ok else RED_MARK


def _version_cell(analysis: DependencyAnalysis | None) -> str:
    if analysis is None or analysis.current_version is None:
        return ""
    return f"{analysis.current_version} {_mark(analysis.is_up_to_date)}"


def _private_cell(analysis: DependencyAnalysis | None) -> str:
    if analysis is None or analysis.current_version is None:
        return ""
    return f"{analysis.is_private_reference} {_mark(analysis.is_private_reference)}"


def _column_label(dependency: str) -> str:
    # Cake.Core -> Cake Core
    return dependency.replace(".", " ")


def _name_cell(record: PackageRecord) -> str:
    if record.repository_url:
        return f"[{record.name}]({record.repository_url})"
    return record.name


class MarkdownReport:
    """Audit report: statistics, the audited table and the exceptions list.

    Only records without notes are audited; every record with notes is listed
    under ``## Exceptions`` with its first note.
    """

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now

    def render(self, records: Sequence[PackageRecord], context: DiscoveryContext) -> str:
        cake_version = context.cake_version
        tracked = list(context.config.tracked_dependencies)
        labels = [_column_label(dependency) for dependency in tracked]
        now = self._now or datetime.now(timezone.utc)
        ordered = sorted(records, key=lambda r: r.name.lower())
        audited = [r for r in ordered if not r.analysis.has_notes]
        exceptions = [r for r in ordered if r.analysis.has_notes]

        lines: list[str] = [
            "# Audit Report",
            "",
            f"This report was generated by addin-discovery {VERSION} on "
            f"{now.strftime('%A, %B %d, %Y')} at {now.strftime('%H:%M:%S')} GMT",
            "",
        ]
        if tracked:
            lines.extend(
                [
                    f"- The {' and '.join(f'`{label} Version`' for label in labels)} columns show the version "
                    "referenced by a given addin",
                    f"- The {' and '.join(f'`{label} IsPrivate`' for label in labels)} columns indicate whether the "
                    "references are marked as private. In other words, we are looking for references with the "
                    f'`PrivateAssets=All` attribute like in this example: `<PackageReference Include="{tracked[-1]}" '
                    f'Version="{cake_version.version}" PrivateAssets="All" />`',
                ]
            )
        lines += [
            "- The `Framework` column shows the .NET framework(s) targeted by a given addin. Addins should target "
            f"{cake_version.required_platform} at a minimum"
            + (
                f", and they can also optionally multi-target {' or '.join(cake_version.optional_platforms)}"
                if cake_version.optional_platforms
                else ""
            ),
            "",
            "## Statistics",
            "",
            f"- The analysis discovered {len(ordered)} packages",
            f"  - {len(audited)} were successfully audited",
            f"  - {len(exceptions)} could not be audited (see the 'Exceptions' section)",
            "",
        ]
        for dependency in tracked:
            referencing = [
                r for r in audited if r.analysis.dependencies.get(dependency, DependencyAnalysis()).current_version
            ]
            up_to_date = sum(1 for r in referencing if r.analysis.dependencies[dependency].is_up_to_date)
            private = sum(1 for r in referencing if r.analysis.dependencies[dependency].is_private_reference)
            lines.extend(
                [
                    f"- Of the {len(referencing)} audited addins that reference {dependency}:",
                    f"  - {up_to_date} are targeting the desired version of {dependency}",
                    f"  - {private} have marked the reference to {dependency} as private",
                ]
            )
        lines.append(
            f"- {sum(1 for r in audited if r.analysis.uses_expected_icon)} of the audited addins use the cake-contrib icon"
        )
        lines.append("")

        header = ["Name"]
        for label in labels:
            header += [f"{label} Version", f"{label} IsPrivate"]
        header += ["Framework", "Icon"]
        alignment = ["---"] + [":---:"] * (2 * len(tracked)) + ["---", ":---:"]
        lines.extend(
            [
                f"## Addins (Cake {cake_version.version})",
                "",
                "| " + " | ".join(header) + " |",
                "| " + " | ".join(alignment) + " |",
            ]
        )
        for record in audited:
            frameworks = ", ".join(record.target_platforms or [])
            cells = [_name_cell(record)]
            for dependency in tracked:
                analysis = record.analysis.dependencies.get(dependency)
                cells += [_version_cell(analysis), _private_cell(analysis)]
            cells += [
                f"{frameworks} {_mark(record.analysis.targets_expected_platform)}".strip(),
                _mark(record.analysis.uses_expected_icon),
            ]
            lines.append("| " + " | ".join(cells) + " |")

        lines.extend(["", "## Exceptions"])
        for record in exceptions:
            lines.append("")
            lines.append(f"**{record.name}**: {record.analysis.notes[0]}")
        return "\n".join(lines) + "\n"
