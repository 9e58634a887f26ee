"""Resumable snapshot of the record collection.

The whole collection is stored as a single JSON document so a run that is
interrupted can resume after the last completed stage::

    store = SnapshotStore(Path("work"))
    records = store.load()  # None when there is nothing to resume
    ...
    store.save(records)

Writes are atomic (temp file, fsync, rename). Any failure to read or write
the snapshot raises :class:`SnapshotError`, which aborts the run.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from addin_discovery.exceptions import SnapshotError
from addin_discovery.models import PackageRecord

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "addins.snapshot.json"
SNAPSHOT_VERSION = 1


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SnapshotStore:
    def __init__(self, work_dir: Path, filename: str = SNAPSHOT_FILENAME) -> None:
        self.work_dir = Path(work_dir)
        self.path = self.work_dir / filename

    def exists(self) -> bool:
        return self.path.exists()

    def _read_document(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SnapshotError(
                f"Unable to read snapshot {self.path}: {exc}", context={"path": str(self.path)}
            ) from exc
        if not isinstance(document, dict) or not isinstance(document.get("records"), list):
            raise SnapshotError(f"Snapshot {self.path} has no record list", context={"path": str(self.path)})
        version = document.get("version")
        if version != SNAPSHOT_VERSION:
            raise SnapshotError(
                f"Unsupported snapshot version {version!r}",
                context={"path": str(self.path), "version": version},
            )
        return document

    def load(self) -> list[PackageRecord] | None:
        document = self._read_document()
        if document is None:
            return None
        try:
            records = [PackageRecord.from_dict(item) for item in document["records"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(
                f"Snapshot {self.path} contains an invalid record: {exc}", context={"path": str(self.path)}
            ) from exc
        logger.info("Loaded %d records from %s", len(records), self.path)
        return records

    def save(self, records: Iterable[PackageRecord]) -> None:
        now = _utc_now()
        created_at = now
        try:
            existing = self._read_document()
        except SnapshotError:
            existing = None
        if existing is not None:
            created_at = existing.get("created_at") or now
        document = {
            "version": SNAPSHOT_VERSION,
            "created_at": created_at,
            "updated_at": now,
            "records": [record.to_dict() for record in records],
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                f.write(json.dumps(document, indent=2, ensure_ascii=False) + "\n")
                f.flush()
                os.fsync(f.fileno())
            tmp_path.replace(self.path)
        except OSError as exc:
            raise SnapshotError(
                f"Unable to write snapshot {self.path}: {exc}", context={"path": str(self.path)}
            ) from exc

    def clear(self) -> bool:
        if not self.path.exists():
            return False
        try:
            self.path.unlink()
        except OSError as exc:
            raise SnapshotError(
                f"Unable to remove snapshot {self.path}: {exc}", context={"path": str(self.path)}
            ) from exc
        return True
