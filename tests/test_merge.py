"""Tests for merging per-source discovery results."""

from __future__ import annotations

from addin_discovery.merge import merge_records, select_preferred
from addin_discovery.models import DiscoverySource, PackageRecord

YAML = DiscoverySource.YAML_LISTING
CURATED = DiscoverySource.CURATED_LISTING


class TestSelectPreferred:
    def test_linked_record_wins_over_unlinked(self) -> None:
        unlinked = PackageRecord("Cake.Foo", YAML, repository_url="https://www.nuget.org/packages/Cake.Foo")
        linked = PackageRecord("Cake.Foo", CURATED, repository_url="https://github.com/cake-contrib/Cake.Foo")
        assert select_preferred([unlinked, linked]) is linked

    def test_first_linked_record_in_order(self) -> None:
        first = PackageRecord("Cake.Foo", YAML, repository_url="https://github.com/a/Cake.Foo")
        second = PackageRecord("Cake.Foo", CURATED, repository_url="https://github.com/b/Cake.Foo")
        assert select_preferred([first, second]) is first

    def test_falls_back_to_any_url(self) -> None:
        no_url = PackageRecord("Cake.Foo", YAML)
        nuget = PackageRecord("Cake.Foo", CURATED, repository_url="https://www.nuget.org/packages/Cake.Foo")
        assert select_preferred([no_url, nuget]) is nuget

    def test_no_url_at_all(self) -> None:
        assert select_preferred([PackageRecord("Cake.Foo", YAML)]) is None
        assert select_preferred([]) is None


class TestMergeRecords:
    def test_names_are_grouped_case_insensitively_in_first_seen_order(self) -> None:
        records = [
            PackageRecord("Cake.Bar", YAML, repository_url="https://github.com/o/Cake.Bar"),
            PackageRecord("cake.foo", YAML, repository_url="https://www.nuget.org/packages/Cake.Foo"),
            PackageRecord("Cake.Foo", CURATED, repository_url="https://github.com/o/Cake.Foo"),
        ]
        merged = merge_records(records)
        assert [r.name for r in merged] == ["Cake.Bar", "Cake.Foo"]
        assert merged[1].discovery_source is CURATED

    def test_records_without_any_url_are_dropped(self) -> None:
        merged = merge_records([PackageRecord("Cake.Nothing", YAML), PackageRecord("Cake.Nothing", CURATED)])
        assert merged == []
