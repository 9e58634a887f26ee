from __future__ import annotations

import dataclasses
from collections.abc import Callable
from datetime import datetime, timezone

from addin_discovery.classification import analyze_record
from addin_discovery.context import DiscoveryContext
from addin_discovery.models import DiscoverySource, PackageRecord, Reference
from addin_discovery.reports import GREEN_MARK, RED_MARK, MarkdownReport

ICON = "https://cdn.jsdelivr.net/gh/cake-contrib/graphics/png/cake-contrib-medium.png"


def _analyzed(context: DiscoveryContext, name: str, **kwargs: object) -> PackageRecord:
    record = PackageRecord(name, DiscoverySource.YAML_LISTING, repository_url=f"https://github.com/o/{name}", **kwargs)
    record.analysis = analyze_record(
        record, context.cake_version, context.config.tracked_dependencies, context.config.canonical_icon_url
    )
    return record


def _render(context: DiscoveryContext, records: list[PackageRecord]) -> str:
    now = datetime(2019, 6, 3, 14, 30, 5, tzinfo=timezone.utc)
    return MarkdownReport(now=now).render(records, context)


class TestMarkdownReport:
    def test_header_and_statistics(self, make_context: Callable[..., DiscoveryContext]) -> None:
        context = make_context()
        good = _analyzed(
            context,
            "Cake.Good",
            references=[Reference("Cake.Core", "0.33.0", True), Reference("Cake.Common", "0.33.0", True)],
            target_platforms=["netstandard2.0"],
            icon_url=ICON,
        )
        old = _analyzed(context, "Cake.Old", references=[Reference("Cake.Core", "0.26.0", False)])
        broken = PackageRecord("Cake.Broken", DiscoverySource.CURATED_LISTING)
        broken.analysis.add_note("find_solution", "the project does not exist: https://github.com/o/Cake.Broken")

        report = _render(context, [old, broken, good])

        assert report.startswith("# Audit Report\n")
        assert "on Monday, June 03, 2019 at 14:30:05 GMT" in report
        assert "- The analysis discovered 3 packages" in report
        assert "  - 2 were successfully audited" in report
        assert "  - 1 could not be audited (see the 'Exceptions' section)" in report
        assert "- Of the 2 audited addins that reference Cake.Core:" in report
        assert "  - 1 are targeting the desired version of Cake.Core" in report
        assert "- Of the 1 audited addins that reference Cake.Common:" in report
        assert "- 1 of the audited addins use the cake-contrib icon" in report

    def test_audited_table_is_sorted_by_name(self, make_context: Callable[..., DiscoveryContext]) -> None:
        context = make_context()
        good = _analyzed(
            context,
            "Cake.Good",
            references=[Reference("Cake.Core", "0.33.0", True)],
            target_platforms=["netstandard2.0", "net461"],
            icon_url=ICON,
        )
        old = _analyzed(context, "cake.Alpha", references=[Reference("Cake.Core", "0.26.0", False)])

        report = _render(context, [good, old])

        assert "## Addins (Cake 0.33.0)" in report
        rows = [line for line in report.splitlines() if line.startswith("| [")]
        assert rows == [
            f"| [cake.Alpha](https://github.com/o/cake.Alpha) | 0.26.0 {RED_MARK} | False {RED_MARK} |  |  "
            f"| {RED_MARK} | {RED_MARK} |",
            f"| [Cake.Good](https://github.com/o/Cake.Good) | 0.33.0 {GREEN_MARK} | True {GREEN_MARK} |  |  "
            f"| netstandard2.0, net461 {GREEN_MARK} | {GREEN_MARK} |",
        ]

    def test_exceptions_show_first_note(self, make_context: Callable[..., DiscoveryContext]) -> None:
        context = make_context()
        broken = PackageRecord("Cake.Broken", DiscoverySource.CURATED_LISTING)
        broken.analysis.add_note("find_solution", "first")
        broken.analysis.add_note("find_projects", "second")

        report = _render(context, [broken])

        assert report.endswith("## Exceptions\n\n**Cake.Broken**: find_solution: first\n")
        assert "| [Cake.Broken]" not in report

    def test_columns_follow_tracked_dependencies(self, make_context: Callable[..., DiscoveryContext]) -> None:
        context = make_context()
        context.config = dataclasses.replace(context.config, tracked_dependencies=["Cake.Core", "Cake.Json"])
        record = _analyzed(
            context,
            "Cake.Foo",
            references=[Reference("Cake.Core", "0.33.0", True), Reference("Cake.Json", "0.20.0", False)],
            target_platforms=["netstandard2.0"],
            icon_url=ICON,
        )

        report = _render(context, [record])

        assert (
            "| Name | Cake Core Version | Cake Core IsPrivate | Cake Json Version | Cake Json IsPrivate "
            "| Framework | Icon |"
        ) in report
        assert "| --- | :---: | :---: | :---: | :---: | --- | :---: |" in report
        assert "Cake Common" not in report
        rows = [line for line in report.splitlines() if line.startswith("| [")]
        assert rows == [
            f"| [Cake.Foo](https://github.com/o/Cake.Foo) | 0.33.0 {GREEN_MARK} | True {GREEN_MARK} "
            f"| 0.20.0 {RED_MARK} | False {RED_MARK} | netstandard2.0 {GREEN_MARK} | {GREEN_MARK} |"
        ]
