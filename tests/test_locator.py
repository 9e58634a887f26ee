from __future__ import annotations

from typing import Any

import pytest

from addin_discovery.exceptions import RepositoryNotFoundError
from addin_discovery.locator import find_solution_file


class TestFindSolutionFile:
    def test_root_solution_wins_over_nested_ones(self, fake_provider: Any) -> None:
        fake_provider.add_file("o", "r", "src/sub/X.sln", "")
        fake_provider.add_file("o", "r", "root.sln", "")
        found = find_solution_file(fake_provider, "o", "r")
        assert found is not None
        assert found.path == "root.sln"

    def test_alphabetically_first_solution_in_a_folder(self, fake_provider: Any) -> None:
        fake_provider.add_file("o", "r", "Zeta.sln", "")
        fake_provider.add_file("o", "r", "alpha.sln", "")
        assert find_solution_file(fake_provider, "o", "r").name == "alpha.sln"

    def test_source_folders_are_searched_before_others(self, fake_provider: Any) -> None:
        fake_provider.add_file("o", "r", "docs/Docs.sln", "")
        fake_provider.add_file("o", "r", "Source/Cake.Foo.sln", "")
        assert find_solution_file(fake_provider, "o", "r").path == "Source/Cake.Foo.sln"

    def test_other_folders_are_searched_depth_first(self, fake_provider: Any) -> None:
        fake_provider.add_file("o", "r", "README.md", "")
        fake_provider.add_file("o", "r", "build/tools/Build.sln", "")
        assert find_solution_file(fake_provider, "o", "r").path == "build/tools/Build.sln"

    def test_only_files_count_as_solutions(self, fake_provider: Any) -> None:
        fake_provider.add_file("o", "r", "odd.sln/readme.txt", "")
        assert find_solution_file(fake_provider, "o", "r") is None

    def test_no_solution_anywhere(self, fake_provider: Any) -> None:
        fake_provider.add_file("o", "r", "README.md", "")
        fake_provider.add_file("o", "r", "src/code.cs", "")
        assert find_solution_file(fake_provider, "o", "r") is None

    def test_missing_repository_propagates(self, fake_provider: Any) -> None:
        with pytest.raises(RepositoryNotFoundError):
            find_solution_file(fake_provider, "o", "missing")
