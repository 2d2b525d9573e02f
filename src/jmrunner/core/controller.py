import asyncio
import logging
import os
import uuid
from datetime import datetime
from typing import Callable, Optional

from jmrunner.adapters.base import ProcessRunner
from jmrunner.config import Settings
from jmrunner.core.archive import RunArchive
from jmrunner.core.errors import (
    ArchivalError,
    CorruptMetadata,
    MetadataNotFound,
    OutputNotFound,
    ProcessSpawnError,
    RunNotFound,
)
from jmrunner.core.metadata import read_metadata, write_metadata
from jmrunner.core.metrics import DurationGauge
from jmrunner.core.registry import RunRegistry
from jmrunner.core.scheduler import Effect, SchedulerEvent, transition
from jmrunner.core.supervisor import ProcessExited, ProcessSupervisor, utcnow
from jmrunner.core.test_plan import parse_test_name
from jmrunner.models import ControllerStatus, Overview, Run, RunOutcome, RunStatus

logger = logging.getLogger(__name__)

UNCATEGORIZED = "uncategorized"
TAIL_BLOCK_SIZE = 65536

_OUTCOME_EVENTS = {
    RunOutcome.SUCCEEDED: SchedulerEvent.RUN_SUCCEEDED,
    RunOutcome.FAILED: SchedulerEvent.RUN_FAILED,
    RunOutcome.KILLED: SchedulerEvent.RUN_CANCELLED,
}


def _started_at(run: Run) -> datetime:
    return datetime.fromisoformat(run.timestamp)


def _tail(f, line_limit: int) -> bytes:
    """Last line_limit lines of a binary file, read backwards in blocks."""
    f.seek(0, os.SEEK_END)
    pos = f.tell()
    data = b""
    while pos > 0:
        step = min(TAIL_BLOCK_SIZE, pos)
        pos -= step
        f.seek(pos)
        data = f.read(step) + data
        # the first line may be cut off, so one extra line is needed
        if len(data.splitlines()) > line_limit:
            break
    return b"".join(data.splitlines(keepends=True)[-line_limit:])


class RunController:
    """
    Single owner of the run registry and the scheduling state machine.

    Every mutation (submission, cancellation, deletion, process completion)
    runs on the event loop under one lock, so transitions of a run are
    totally ordered. Process exits arrive as ``ProcessExited`` events on
    ``self.events`` and are consumed by ``main_loop``. Status queries read
    the registry without taking the lock.
    """

    def __init__(
        self,
        settings: Settings,
        runner: ProcessRunner,
        *,
        metrics: Optional[DurationGauge] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.clock = clock
        self.registry = RunRegistry()
        self.archive = RunArchive(settings)
        self.metrics = metrics or DurationGauge(settings.custom_label_names)
        self.events: asyncio.Queue = asyncio.Queue()
        self.supervisor = ProcessSupervisor(
            settings, runner, self.registry, self.archive, self.metrics, self.events,
            clock=clock,
        )
        self.status = ControllerStatus.IDLE
        self._lock = asyncio.Lock()

    # ── Main Loop ───────────────────────────────────────────────

    async def main_loop(self):
        """Consume process completion events until cancelled."""
        while True:
            try:
                await self.process_next_event()
            except asyncio.CancelledError:
                logger.info("Run controller shutting down")
                break
            except Exception:
                logger.exception("Run controller event error")

    async def process_next_event(self):
        event = await self.events.get()
        async with self._lock:
            await self._on_process_exited(event)

    async def _on_process_exited(self, event: ProcessExited):
        run = self.supervisor.complete(event)
        if run is None:
            return
        try:
            await self._archive(run.id)
        finally:
            await self._apply(_OUTCOME_EVENTS[run.outcome])

    # ── Scheduling ──────────────────────────────────────────────

    async def _apply(self, event: SchedulerEvent):
        result = transition(self.status, event)
        if result.state != self.status:
            logger.info(
                "Controller %s -> %s (%s)", self.status.value, result.state.value, event.value
            )
        self.status = result.state
        for effect in result.effects:
            if effect == Effect.START_NEXT:
                await self._start_next()
            elif effect == Effect.NOTIFY_PAUSED:
                logger.warning(
                    "Controller paused after %s with %d queued run(s); resume to continue",
                    event.value, len(self.registry.with_status(RunStatus.QUEUED)),
                )

    def _next_queued(self) -> Optional[Run]:
        queued = self.registry.with_status(RunStatus.QUEUED)
        if not queued:
            return None
        return min(queued, key=_started_at)

    async def _start_next(self):
        run = self._next_queued()
        if run is None:
            logger.debug("No queued runs to start")
            return
        try:
            await self.supervisor.start(run, self.archive.temp_dir(run.id))
        except ProcessSpawnError as exc:
            logger.error("ALERT [spawn_failed] run %s: %s", run.id, exc)
            await self._apply(SchedulerEvent.SPAWN_FAILED)
            return
        await self._apply(SchedulerEvent.RUN_STARTED)

    async def _archive(self, run_id: str) -> bool:
        try:
            await self.archive.archive(run_id)
            return True
        except ArchivalError as exc:
            logger.error(
                "ALERT [archival_failed] run %s: %s; data left at %s",
                run_id, exc, self.archive.temp_dir(run_id),
            )
            return False

    # ── Queries ─────────────────────────────────────────────────

    @property
    def running_count(self) -> int:
        return len(self.registry.with_status(RunStatus.RUNNING))

    def get_run(self, run_id: str) -> Run:
        entry = self.registry.get(run_id)
        if entry is None:
            raise RunNotFound(run_id)
        return entry.run

    def status_of(self, run_id: str) -> RunStatus:
        return self.get_run(run_id).status

    def _read_output(self, run_id: str, line_limit: int) -> str:
        path = self.archive.output_log(run_id)
        if path is None:
            raise OutputNotFound(run_id)
        try:
            with open(path, "rb") as f:
                data = _tail(f, line_limit) if line_limit > 0 else f.read()
        except FileNotFoundError:
            raise OutputNotFound(run_id) from None
        return data.decode("utf-8", errors="replace")

    async def tail_output(self, run_id: str, line_limit: Optional[int] = None) -> str:
        """Last ``line_limit`` lines of the run's captured output (0 = everything)."""
        self.get_run(run_id)
        if line_limit is None:
            line_limit = self.settings.default_tail_lines
        return await asyncio.to_thread(self._read_output, run_id, line_limit)

    def overview(self) -> Overview:
        runs = sorted((e.run for e in self.registry.list()), key=_started_at)
        completed: dict[str, dict[str, list[Run]]] = {}
        for run in runs:
            if run.is_active:
                continue
            by_name = completed.setdefault(run.category or UNCATEGORIZED, {})
            by_name.setdefault(run.name, []).append(run)
        return Overview(
            queued=[r for r in runs if r.status == RunStatus.QUEUED],
            current=next((r for r in runs if r.status == RunStatus.RUNNING), None),
            completed=completed,
        )

    # ── Operations ──────────────────────────────────────────────

    async def submit(self, spec: bytes, category: Optional[str] = None) -> Run:
        """Queue a test plan and start it if the controller is idle.

        Raises InvalidSpec before anything is written if the plan has no name.
        """
        name = parse_test_name(spec)
        run = Run(
            id=str(uuid.uuid4()),
            name=name,
            category=category or None,
            timestamp=self.clock().isoformat(),
            status=RunStatus.QUEUED,
        )
        async with self._lock:
            self.archive.create_working_dir(run.id, spec)
            write_metadata(self.archive.temp_root, run)
            self.registry.upsert(run)
            logger.info("Queued run %s (%s, category %s)", run.id, run.name, run.category)
            await self._apply(SchedulerEvent.SUBMITTED)
            return self.registry.get(run.id).run

    async def _cancel(self, run_id: str) -> Run:
        entry = self.registry.get(run_id)
        if entry is None:
            raise RunNotFound(run_id)
        if not entry.run.is_active:
            logger.info("Run %s is already %s, nothing to cancel", run_id, entry.run.status.value)
            return entry.run

        run, was_running = self.supervisor.cancel(run_id)
        try:
            if self.archive.is_in_flight(run_id):
                await self._archive(run_id)
        finally:
            if was_running:
                # A forced kill may leave the system under test inconsistent
                await self._apply(SchedulerEvent.RUN_CANCELLED)
        return run

    async def cancel(self, run_id: str) -> Run:
        async with self._lock:
            return await self._cancel(run_id)

    async def cancel_all(self) -> list[Run]:
        async with self._lock:
            active = [e.run for e in self.registry.list() if e.run.is_active]
            return [await self._cancel(run.id) for run in sorted(active, key=_started_at)]

    async def _delete(self, run_id: str, confirm: bool) -> bool:
        entry = self.registry.get(run_id)
        if entry is None:
            if self.archive.root_of(run_id) is None:
                raise RunNotFound(run_id)
            if not confirm:
                return False
            logger.warning("Run %s is not registered but removing its data anyway", run_id)
            return await self.archive.remove(run_id)

        if entry.run.is_active:
            await self._cancel(run_id)
        if not confirm:
            logger.info("Run %s kept on disk (deletion not confirmed)", run_id)
            return False

        self.registry.remove(run_id)
        await self.archive.remove(run_id)
        logger.warning("Run %s deleted", run_id)
        return True

    async def delete(self, run_id: str, confirm: bool = False) -> bool:
        """Cancel the run if active; remove it and its data only if confirmed."""
        async with self._lock:
            return await self._delete(run_id, confirm)

    async def delete_all(self, confirm: bool = False) -> int:
        async with self._lock:
            deleted = 0
            for entry in self.registry.list():
                if await self._delete(entry.run.id, confirm):
                    deleted += 1
            return deleted

    async def resume(self) -> ControllerStatus:
        async with self._lock:
            await self._apply(SchedulerEvent.RESUME)
            return self.status

    # ── Import / Export ─────────────────────────────────────────

    async def reconcile_on_startup(self):
        """Archive interrupted runs, then load every archived run into the registry."""
        async with self._lock:
            self.archive.ensure_roots()
            for run_id in self.archive.temp_run_ids():
                logger.warning("Run %s was interrupted, archiving it", run_id)
                await self._archive(run_id)

            root = self.archive.permanent_root
            for run_id in self.archive.permanent_run_ids():
                try:
                    run = read_metadata(root, run_id)
                except MetadataNotFound:
                    logger.warning("Skipping %s: no metadata", os.path.join(root, run_id))
                    continue
                except CorruptMetadata as exc:
                    logger.error("ALERT [corrupt_metadata] run %s: %s", run_id, exc)
                    continue
                if run.is_active:
                    # No process can belong to it after a restart
                    logger.warning("Run %s was %s at shutdown, marking cancelled",
                                   run_id, run.status.value)
                    run = run.model_copy(
                        update={"status": RunStatus.CANCELLED, "outcome": RunOutcome.CANCELLED}
                    )
                    try:
                        write_metadata(root, run)
                    except OSError as exc:
                        logger.error("ALERT [metadata_write_failed] run %s: %s", run_id, exc)
                self.registry.upsert(run)
            logger.info("Imported %d test run(s) from %s", len(self.registry), root)

    async def reconcile_on_shutdown(self):
        """Cancel and archive everything still in the temp root."""
        async with self._lock:
            for run_id in self.archive.temp_run_ids():
                entry = self.registry.get(run_id)
                if entry is not None and entry.run.is_active:
                    await self._cancel(run_id)
                else:
                    await self._archive(run_id)
