from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from addin_discovery.context import DiscoveryContext, safe_folder_name
from addin_discovery.github import Issue
from addin_discovery.models import DiscoverySource, PackageRecord
from addin_discovery.secrets import SecretStr


def test_safe_folder_name() -> None:
    assert safe_folder_name("Cake.Foo") == "Cake.Foo"
    assert safe_folder_name("Cake Foo/../Bar") == "Cake_Foo_.._Bar"
    assert safe_folder_name("..") == "_"


def test_duplicate_record_ids_are_rejected(make_context: Callable[..., DiscoveryContext]) -> None:
    context = make_context()
    with pytest.raises(ValueError):
        context.set_records(
            [PackageRecord("Cake.Foo", DiscoverySource.YAML_LISTING), PackageRecord("cake.foo", DiscoverySource.CURATED_LISTING)]
        )


def test_replace_unknown_record(make_context: Callable[..., DiscoveryContext]) -> None:
    with pytest.raises(KeyError):
        make_context().replace_record("missing", PackageRecord("Missing", DiscoverySource.YAML_LISTING))


def test_actor_login_is_resolved_once(make_context: Callable[..., DiscoveryContext], fake_provider: Any) -> None:
    context = make_context()
    assert context.actor_login() == "audit-bot"
    fake_provider.login = "someone-else"
    assert context.actor_login() == "audit-bot"


def test_no_actor_without_token(make_context: Callable[..., DiscoveryContext]) -> None:
    assert make_context(github_token=SecretStr(None)).actor_login() is None


def test_remembered_issue_is_found_first(make_context: Callable[..., DiscoveryContext]) -> None:
    context = make_context()
    context.issues_for("o", "r", lambda: [Issue(1, "old", "u1")])
    context.remember_issue("O", "R", Issue(2, "new", "u2"))
    assert [i.number for i in context.issues_for("o", "r", lambda: [])] == [2, 1]
