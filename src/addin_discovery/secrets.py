"""Keeps the GitHub token out of log lines and reprs."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "<REDACTED>"

_SENSITIVE_KEYS = frozenset({"authorization", "token", "githubtoken", "accesstoken", "password"})

# applied in order to every rendered log line
_SUBSTITUTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    # Authorization: Bearer xxx, token=xxx, password: "xxx"
    (
        re.compile(
            r"(?i)\b(authorization|github[-_]?token|access[-_]?token|token|password)(\s*[:=]\s*)"
            r"(['\"]?)(?:(?:bearer|token)\s+)?[^,\s'\"]+\3"
        ),
        rf"\1\2\3{REDACTED}\3",
    ),
    # a bare "Bearer xxx" or "token xxx" credential
    (re.compile(r"(?i)\b(bearer|token)\s+[A-Za-z0-9_.\-]{20,}"), rf"\1 {REDACTED}"),
    # personal access tokens wherever they appear
    (re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9_]{30,}|github_pat_[A-Za-z0-9_]{30,})"), REDACTED),
)


def is_sensitive_key(key: str) -> bool:
    return re.sub(r"[^a-z0-9]", "", key.lower()) in _SENSITIVE_KEYS


class SecretStr:
    """A value that renders as ``<REDACTED>``.

    ``reveal()`` returns the real value; call it only where the value is sent to
    GitHub. ``None`` is stored as the empty string and an empty secret is falsy,
    so ``if token:`` means "a token was configured".
    """

    def __init__(self, value: Any) -> None:
        self._value = "" if value is None else str(value)

    def reveal(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __repr__(self) -> str:
        return REDACTED

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SecretStr) and self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)


def redact_string(text: str) -> str:
    for pattern, replacement in _SUBSTITUTIONS:
        text = pattern.sub(replacement, text)
    return text


def redact_structure(value: Any) -> Any:
    """Copy of ``value`` with sensitive mapping entries wrapped and strings redacted."""
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, Mapping):
        return {
            key: SecretStr(item) if is_sensitive_key(str(key)) else redact_structure(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact_structure(item) for item in value)
    return value
