"""Tests for the compliance rules applied to each addin."""

from __future__ import annotations

from addin_discovery.classification import (
    analyze_dependency,
    analyze_record,
    targets_expected_platform,
    uses_expected_icon,
    violations,
)
from addin_discovery.models import CakeVersion, DiscoverySource, PackageRecord, Reference

CAKE_0_28 = CakeVersion("0.28.0", "netstandard2.0", ("net461",))
ICON = "https://cdn.jsdelivr.net/gh/cake-contrib/graphics/png/cake-contrib-medium.png"


class TestAnalyzeDependency:
    def test_no_reference_is_compliant(self) -> None:
        result = analyze_dependency([Reference("Cake.Common", "0.20.0")], "Cake.Core", "0.28.0")
        assert result.current_version is None
        assert result.is_up_to_date is True
        assert result.is_private_reference is False

    def test_lowest_version_decides(self) -> None:
        refs = [Reference("Cake.Core", "0.28.0", True), Reference("Cake.Core", "0.26.0", True)]
        result = analyze_dependency(refs, "Cake.Core", "0.28.0")
        assert result.current_version == "0.26.0"
        assert result.is_up_to_date is False
        assert result.is_private_reference is True

    def test_one_public_reference_makes_it_public(self) -> None:
        refs = [Reference("Cake.Core", "0.28.0", True), Reference("Cake.Core", "0.28.0", False)]
        assert analyze_dependency(refs, "Cake.Core", "0.28.0").is_private_reference is False

    def test_similar_package_ids_do_not_match(self) -> None:
        refs = [Reference("Cake.Core.Extensions", "0.1.0", False)]
        assert analyze_dependency(refs, "Cake.Core", "0.28.0").current_version is None


class TestTargetsExpectedPlatform:
    def test_required_only(self) -> None:
        assert targets_expected_platform(["netstandard2.0"], CAKE_0_28) is True

    def test_required_and_optional(self) -> None:
        assert targets_expected_platform(["NetStandard2.0", "net461"], CAKE_0_28) is True

    def test_missing_required(self) -> None:
        assert targets_expected_platform(["net461"], CAKE_0_28) is False

    def test_unexpected_extra_platform(self) -> None:
        assert targets_expected_platform(["netstandard2.0", "net45"], CAKE_0_28) is False

    def test_no_platforms(self) -> None:
        assert targets_expected_platform([], CAKE_0_28) is False
        assert targets_expected_platform(None, CAKE_0_28) is False


def test_icon_must_match_exactly() -> None:
    assert uses_expected_icon(ICON, ICON) is True
    assert uses_expected_icon(ICON.upper(), ICON) is False
    assert uses_expected_icon(None, ICON) is False


class TestAnalyzeRecord:
    def _record(self, **kwargs: object) -> PackageRecord:
        return PackageRecord(
            "Cake.Foo",
            DiscoverySource.YAML_LISTING,
            repository_url="https://github.com/cake-contrib/Cake.Foo",
            **kwargs,
        )

    def test_compliant_record_has_no_violations(self) -> None:
        record = self._record(
            references=[Reference("Cake.Core", "0.28.0", True), Reference("Cake.Common", "0.28.0", True)],
            target_platforms=["netstandard2.0"],
            icon_url=ICON,
        )
        record.analysis = analyze_record(record, CAKE_0_28, ["Cake.Core", "Cake.Common"], ICON)
        assert record.analysis.analyzed is True
        assert violations(record, CAKE_0_28) == []

    def test_violations_are_listed(self) -> None:
        record = self._record(
            references=[Reference("Cake.Core", "0.26.0", False)],
            target_platforms=["net45"],
            icon_url="https://example.com/icon.png",
        )
        record.analysis = analyze_record(record, CAKE_0_28, ["Cake.Core", "Cake.Common"], ICON)

        problems = violations(record, CAKE_0_28)

        assert record.analysis.dependencies["Cake.Common"].current_version is None
        assert problems == [
            "The reference to Cake.Core should be updated to 0.28.0 (currently 0.26.0)",
            'The reference to Cake.Core should be private (PrivateAssets="All")',
            "The addin should target netstandard2.0 (optionally also net461)",
            "The addin should use the cake-contrib icon",
        ]
