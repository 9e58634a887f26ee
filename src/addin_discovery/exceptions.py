"""Errors raised by the discovery run.

Each carries a stable ``code`` and a ``context`` dict; log them with
``logger.error(..., extra=exc.as_log_fields())`` so both reach the JSON log.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class DiscoveryError(Exception):
    code = "discovery_error"

    def __init__(self, message: str, *, code: str | None = None, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context: dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r})"

    def as_log_fields(self) -> dict[str, Any]:
        return {"error_code": self.code, "error_message": self.message, "error_context": self.context}


class ConfigValidationError(DiscoveryError):
    code = "config_validation_error"


class YamlParseError(DiscoveryError):
    code = "yaml_parse_error"


class RemoteServiceError(DiscoveryError):
    """A call to a remote collaborator failed for a reason other than "not found"."""

    code = "remote_service_error"


class RepositoryNotFoundError(RemoteServiceError):
    """The remote repository, file or folder does not exist."""

    code = "not_found"


class SnapshotError(DiscoveryError):
    """The snapshot store could not be read or written. Aborts the run."""

    code = "snapshot_error"


class StageFailedError(DiscoveryError):
    """A discovery or merge stage failed; the collection would be incomplete. Aborts the run."""

    code = "stage_failed"
