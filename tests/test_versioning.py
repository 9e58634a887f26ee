from __future__ import annotations

import pytest

from addin_discovery.versioning import format_version, is_up_to_date, min_version, version_key


class TestIsUpToDate:
    @pytest.mark.parametrize(
        ("current", "desired", "expected"),
        [
            ("0.28.0", "0.28.0", True),
            ("0.26.1", "0.28.0", False),
            ("0.28.1", "0.28.0", True),
            ("1.0.0", "0.28.5", True),
            ("0.9.9", "1.0.0", False),
            ("0.28", "0.28.0", True),
        ],
    )
    def test_first_differing_component_decides(self, current: str, desired: str, expected: bool) -> None:
        assert is_up_to_date(current, desired) is expected

    def test_missing_version_counts_as_up_to_date(self) -> None:
        assert is_up_to_date("", "0.28.0") is True
        assert is_up_to_date(None, "0.28.0") is True

    def test_fourth_component_is_ignored(self) -> None:
        assert is_up_to_date("0.28.0.9", "0.28.0") is True
        assert is_up_to_date("0.26.0.0", "0.28.0") is False


class TestFormatting:
    def test_format_version_keeps_three_components(self) -> None:
        assert format_version("0.26.0.0") == "0.26.0"
        assert format_version("1.2") == "1.2"
        assert format_version(None) == ""

    def test_prerelease_suffix_sorts_by_leading_digits(self) -> None:
        assert version_key("0.30.0-beta0001") == (0, 30, 0)

    def test_min_version_prefers_missing_version(self) -> None:
        assert min_version(["0.28.0", "0.26.0", "0.33.0"]) == "0.26.0"
        assert min_version(["0.28.0", ""]) == ""
        assert min_version([]) == ""
