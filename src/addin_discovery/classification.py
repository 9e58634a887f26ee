from __future__ import annotations

from collections.abc import Iterable, Sequence

from addin_discovery.models import AnalysisResult, CakeVersion, DependencyAnalysis, PackageRecord, Reference
from addin_discovery.versioning import is_up_to_date, min_version


def analyze_dependency(references: Iterable[Reference], dependency_id: str, desired_version: str) -> DependencyAnalysis:
    """Freshness and privacy of every reference to ``dependency_id``.

    No matching reference leaves ``current_version`` unset and counts as
    compliant.
    """
    matching = [r for r in references if r.id == dependency_id]
    if not matching:
        return DependencyAnalysis()
    current = min_version([r.version for r in matching])
    return DependencyAnalysis(
        current_version=current,
        is_up_to_date=is_up_to_date(current, desired_version),
        is_private_reference=all(r.is_private for r in matching),
    )


def targets_expected_platform(platforms: Sequence[str] | None, cake_version: CakeVersion) -> bool:
    if not platforms:
        return False
    declared = {p.strip().lower() for p in platforms if p.strip()}
    required = cake_version.required_platform.lower()
    optional = {p.lower() for p in cake_version.optional_platforms}
    if required not in declared:
        return False
    return declared - {required} <= optional


def uses_expected_icon(icon_url: str | None, canonical_icon_url: str) -> bool:
    return icon_url is not None and icon_url == canonical_icon_url


def analyze_record(
    record: PackageRecord,
    cake_version: CakeVersion,
    tracked_dependencies: Sequence[str],
    canonical_icon_url: str,
) -> AnalysisResult:
    references = record.references or []
    return AnalysisResult(
        dependencies={
            dependency: analyze_dependency(references, dependency, cake_version.version)
            for dependency in tracked_dependencies
        },
        targets_expected_platform=targets_expected_platform(record.target_platforms, cake_version),
        uses_expected_icon=uses_expected_icon(record.icon_url, canonical_icon_url),
        analyzed=True,
    )


def violations(record: PackageRecord, cake_version: CakeVersion) -> list[str]:
    """Human readable list of the compliance rules ``record`` breaks."""
    analysis = record.analysis
    found: list[str] = []
    for dependency, result in analysis.dependencies.items():
        if result.current_version is None:
            continue
        if not result.is_up_to_date:
            found.append(
                f"The reference to {dependency} should be updated to {cake_version.version} "
                f"(currently {result.current_version})"
            )
        if not result.is_private_reference:
            found.append(f"The reference to {dependency} should be private (PrivateAssets=\"All\")")
    if not analysis.targets_expected_platform:
        expected = cake_version.required_platform
        if cake_version.optional_platforms:
            expected += " (optionally also " + " or ".join(cake_version.optional_platforms) + ")"
        found.append(f"The addin should target {expected}")
    if not analysis.uses_expected_icon:
        found.append("The addin should use the cake-contrib icon")
    return found
