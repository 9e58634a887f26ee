"""Stage orchestration over the record arena.

A :class:`Pipeline` runs its stages strictly in order. A stage either
transforms the whole context (discovery, merge, reports) or processes every
record independently on daemon worker threads. Per-record work happens on a private
copy of the record; the copy replaces the original only when the unit of work
finishes in time without raising. Otherwise the original is kept and the
failure becomes a note tagged with the stage name. Each stage is a barrier,
and checkpointing stages write the whole collection to the snapshot store
before the next stage starts. A failing stage that builds the collection
(discovery, merge) aborts the run before anything is saved.
"""

from __future__ import annotations

import copy
import logging
import queue
import shutil
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from addin_discovery.context import DiscoveryContext
from addin_discovery.exceptions import DiscoveryError, SnapshotError, StageFailedError
from addin_discovery.logging_config import LogContext
from addin_discovery.models import PackageRecord
from addin_discovery.snapshot import SnapshotStore

logger = logging.getLogger(__name__)

RecordProcessor = Callable[[DiscoveryContext, PackageRecord], None]
ContextTransform = Callable[[DiscoveryContext], None]
Precondition = Callable[[DiscoveryContext], bool]
ProgressCallback = Callable[[int, int, str], None]
Outcome = tuple[str, "PackageRecord | None", "Exception | None"]

STATUS_OK = "ok"
STATUS_ERROR = "error"


def _always(context: DiscoveryContext) -> bool:
    return True


@dataclass
class Stage:
    """One step of the pipeline.

    Exactly one of ``process`` (per record) and ``transform`` (whole context)
    must be given. ``skip_on_resume`` marks the discovery and merge stages that
    a run resumed from a snapshot does not repeat.
    """

    name: str
    description: str
    process: RecordProcessor | None = None
    transform: ContextTransform | None = None
    precondition: Precondition = _always
    mutates_set: bool = False
    checkpoint: bool = True
    skip_on_resume: bool = False

    def __post_init__(self) -> None:
        if (self.process is None) == (self.transform is None):
            raise ValueError(f"stage {self.name!r} needs exactly one of process or transform")

    @property
    def is_per_record(self) -> bool:
        return self.process is not None


@dataclass
class PipelineResult:
    status: str
    records: list[PackageRecord] = field(default_factory=list)
    completed_stages: list[str] = field(default_factory=list)
    skipped_stages: list[str] = field(default_factory=list)
    failed_stages: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def _failure_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class Pipeline:
    def __init__(
        self,
        stages: Sequence[Stage],
        *,
        snapshot_store: SnapshotStore | None = None,
        on_progress: ProgressCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 0.5,
    ) -> None:
        names = [stage.name for stage in stages]
        if len(set(names)) != len(names):
            raise ValueError("stage names must be unique")
        self.stages = list(stages)
        self._store = snapshot_store
        self._on_progress = on_progress
        self._clock = clock
        self._poll_interval = poll_interval

    def _tick(self, completed: int, stage: Stage) -> None:
        if self._on_progress is not None:
            self._on_progress(completed, len(self.stages), stage.name)

    def _prepare(self, context: DiscoveryContext, store: SnapshotStore) -> None:
        work_dir = context.work_dir
        if context.options.clear_cache and work_dir.exists():
            logger.info("Clearing cache in %s", work_dir)
            try:
                shutil.rmtree(work_dir)
            except OSError as exc:
                raise SnapshotError(f"Unable to clear {work_dir}: {exc}", context={"path": str(work_dir)}) from exc
        try:
            work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SnapshotError(
                f"Unable to create work directory {work_dir}: {exc}", context={"path": str(work_dir)}
            ) from exc
        records = store.load()
        if records is not None:
            context.set_records(records)
            context.resumed = True
            logger.info("Resuming from snapshot with %d records", len(records))

    def run(self, context: DiscoveryContext) -> PipelineResult:
        store = self._store or SnapshotStore(context.work_dir)
        result = PipelineResult(status=STATUS_OK)
        try:
            self._prepare(context, store)
            for index, stage in enumerate(self.stages, start=1):
                with LogContext(stage=stage.name):
                    self._run_stage(stage, index, context, store, result)
                self._tick(index, stage)
        except (SnapshotError, StageFailedError) as exc:
            logger.error("Run aborted: %s", exc, extra=exc.as_log_fields())
            result.status = STATUS_ERROR
            result.error = str(exc)
        result.records = context.ordered_records()
        return result

    def _run_stage(
        self,
        stage: Stage,
        index: int,
        context: DiscoveryContext,
        store: SnapshotStore,
        result: PipelineResult,
    ) -> None:
        if stage.skip_on_resume and context.resumed:
            logger.info("Step %d/%d %s skipped: resumed from snapshot", index, len(self.stages), stage.name)
            result.skipped_stages.append(stage.name)
            return
        if not stage.precondition(context):
            logger.info("Step %d/%d %s skipped: precondition not met", index, len(self.stages), stage.name)
            result.skipped_stages.append(stage.name)
            return

        logger.info("Step %d/%d %s: %s", index, len(self.stages), stage.name, stage.description)
        started = time.monotonic()
        if stage.is_per_record:
            failures = self._run_per_record(stage, context)
            logger.info(
                "%s finished for %d records (%d failed) in %.1fs",
                stage.name,
                len(context.record_ids),
                failures,
                time.monotonic() - started,
            )
        else:
            try:
                stage.transform(context)
            except SnapshotError:
                raise
            except Exception as exc:
                result.failed_stages.append(stage.name)
                if stage.mutates_set or stage.skip_on_resume:
                    # a partial collection must never reach the snapshot
                    raise StageFailedError(
                        f"{stage.name} failed: {_failure_message(exc)}", context={"stage": stage.name}
                    ) from exc
                fields = exc.as_log_fields() if isinstance(exc, DiscoveryError) else {}
                logger.exception("%s failed: %s", stage.name, exc, extra=fields)
        result.completed_stages.append(stage.name)

        if stage.checkpoint:
            store.save(context.ordered_records())

    def _work(
        self,
        stage: Stage,
        context: DiscoveryContext,
        todo: queue.SimpleQueue[tuple[str, PackageRecord]],
        outcomes: queue.SimpleQueue[Outcome],
        started: dict[str, float],
    ) -> None:
        """Worker loop: process queued record copies until the queue is empty."""
        while True:
            try:
                record_id, record = todo.get_nowait()
            except queue.Empty:
                return
            started[record_id] = self._clock()
            try:
                with LogContext(stage=stage.name, record=record.name):
                    stage.process(context, record)
            except Exception as exc:
                outcomes.put((record_id, None, exc))
            else:
                outcomes.put((record_id, record, None))

    def _run_per_record(self, stage: Stage, context: DiscoveryContext) -> int:
        record_ids = list(context.record_ids)
        if not record_ids:
            return 0
        workers = min(context.options.max_workers or len(record_ids), len(record_ids))
        timeout = context.options.record_timeout
        todo: queue.SimpleQueue[tuple[str, PackageRecord]] = queue.SimpleQueue()
        for record_id in record_ids:
            todo.put((record_id, copy.deepcopy(context.records[record_id])))
        outcomes: queue.SimpleQueue[Outcome] = queue.SimpleQueue()
        started: dict[str, float] = {}
        pending = set(record_ids)
        failures = 0
        spawned = 0

        def spawn() -> None:
            nonlocal spawned
            spawned += 1
            # daemon, so a task abandoned after a timeout cannot keep the process alive
            threading.Thread(
                target=self._work,
                args=(stage, context, todo, outcomes, started),
                name=f"{stage.name}_{spawned}",
                daemon=True,
            ).start()

        for _ in range(workers):
            spawn()

        while pending:
            try:
                record_id, record, error = outcomes.get(timeout=self._poll_interval)
            except queue.Empty:
                pass
            else:
                # results of abandoned tasks arrive late and are dropped
                if record_id in pending:
                    pending.discard(record_id)
                    if error is None:
                        context.replace_record(record_id, record)
                    else:
                        failures += 1
                        original = context.records[record_id]
                        logger.warning("%s failed for %s: %s", stage.name, original.name, error)
                        original.analysis.add_note(stage.name, _failure_message(error))

            now = self._clock()
            for record_id in [rid for rid in record_ids if rid in pending]:
                began = started.get(record_id)
                if began is None or now - began <= timeout:
                    continue
                pending.discard(record_id)
                failures += 1
                original = context.records[record_id]
                logger.warning("%s timed out for %s after %.0fs", stage.name, original.name, timeout)
                original.analysis.add_note(stage.name, f"timed out after {timeout:g} seconds")
                if not todo.empty():
                    spawn()
        return failures
