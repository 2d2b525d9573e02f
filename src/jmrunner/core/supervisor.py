"""Process Supervisor: owns the external test executor for one run at a time.

Process exits are not handled where they are observed. A watcher task per
process turns the exit into a ``ProcessExited`` event on the controller's
queue, and the controller hands it back to ``complete`` on the
orchestration loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from jmrunner.adapters.base import ExitStatus, ProcessHandle, ProcessRunner
from jmrunner.config import Settings
from jmrunner.core.archive import (
    OUTPUT_NAME,
    REPORT_NAME,
    RESULTS_FOLDER,
    TEST_NAME,
    RunArchive,
)
from jmrunner.core.errors import InvalidSpec, RunNotFound
from jmrunner.core.metadata import write_metadata
from jmrunner.core.metrics import DurationGauge
from jmrunner.core.registry import RunRegistry
from jmrunner.core.test_plan import read_labels
from jmrunner.models import Run, RunOutcome, RunStatus

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProcessExited:
    run_id: str
    status: ExitStatus


class ProcessSupervisor:
    def __init__(
        self,
        settings: Settings,
        runner: ProcessRunner,
        registry: RunRegistry,
        archive: RunArchive,
        metrics: DurationGauge,
        events: asyncio.Queue,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.runner = runner
        self.registry = registry
        self.archive = archive
        self.metrics = metrics
        self.events = events
        self.clock = clock
        self._watchers: set[asyncio.Task] = set()

    def _persist(self, root: str, run: Run) -> None:
        try:
            write_metadata(root, run)
        except OSError as exc:
            logger.error(
                "ALERT [metadata_write_failed] run %s (%s): %s", run.id, run.status.value, exc
            )

    def command(self) -> list[str]:
        return [
            self.settings.jmeter_executable,
            "-n",
            "-t", TEST_NAME,
            "-l", REPORT_NAME,
            "-e",
            "-o", RESULTS_FOLDER,
        ]

    # ── Start ───────────────────────────────────────────────────

    async def start(self, run: Run, working_dir: str) -> Run:
        """Spawn the executor for a queued run and mark it running.

        Returns as soon as the process is started. Raises ProcessSpawnError
        without touching the run if the executable cannot be started.
        """
        log_path = os.path.join(working_dir, OUTPUT_NAME)
        handle = await self.runner.spawn(self.command(), cwd=working_dir, log_path=log_path)

        started = run.model_copy(
            update={"status": RunStatus.RUNNING, "timestamp": self.clock().isoformat()}
        )
        self.registry.upsert(started, handle)
        self._persist(self.archive.temp_root, started)
        logger.info("Run %s (%s): queued -> running, pid %s", run.id, run.name, handle.pid)

        task = asyncio.create_task(self._watch(run.id, handle))
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)
        return started

    async def _watch(self, run_id: str, handle: ProcessHandle) -> None:
        try:
            status = await handle.wait()
        except Exception:
            logger.exception("Lost track of process %s for run %s", handle.pid, run_id)
            return
        await self.events.put(ProcessExited(run_id, status))

    async def stop_watchers(self) -> None:
        """Cancel the exit watchers and wait for them to finish."""
        watchers = list(self._watchers)
        for task in watchers:
            task.cancel()
        await asyncio.gather(*watchers, return_exceptions=True)
        self._watchers.clear()

    # ── Completion ──────────────────────────────────────────────

    def _labels(self, run: Run) -> dict[str, str]:
        path = os.path.join(self.archive.temp_dir(run.id), TEST_NAME)
        try:
            return read_labels(path)
        except (InvalidSpec, OSError) as exc:
            logger.warning(
                "No labels for run %s, reporting duration with category and name only: %s",
                run.id, exc,
            )
            return {}

    def complete(self, event: ProcessExited) -> Run | None:
        """Record the end of a process. Returns the finished run, or None if ignored."""
        entry = self.registry.get(event.run_id)
        if entry is None:
            logger.info("Ignoring process exit for unknown run %s", event.run_id)
            return None

        run = entry.run
        if run.status != RunStatus.RUNNING:
            logger.info(
                "Ignoring process exit (code=%s, signal=%s) for run %s: already %s",
                event.status.code, event.status.signal, run.id, run.status.value,
            )
            return None

        if event.status.signalled:
            logger.warning(
                "Run %s terminated by signal %s without a cancel request",
                run.id, event.status.signal,
            )
            finished = run.model_copy(
                update={"status": RunStatus.CANCELLED, "outcome": RunOutcome.KILLED}
            )
        else:
            code = event.status.code
            started_at = datetime.fromisoformat(run.timestamp)
            duration = round((self.clock() - started_at).total_seconds(), 3)
            labels = self._labels(run)
            self.metrics.observe(duration, category=run.category, name=run.name, labels=labels)
            finished = run.model_copy(
                update={
                    "status": RunStatus.DONE,
                    "code": code,
                    "duration": duration,
                    "outcome": RunOutcome.SUCCEEDED if code == 0 else RunOutcome.FAILED,
                }
            )
            logger.info("Run %s finished with code %s after %.1fs", run.id, code, duration)

        self.registry.upsert(finished)
        self._persist(self.archive.temp_root, finished)
        return finished

    # ── Cancel ──────────────────────────────────────────────────

    def cancel(self, run_id: str) -> tuple[Run, bool]:
        """Cancel a queued or running run.

        Returns the cancelled run and whether it was the running one. A
        failed kill request is logged, never raised: the run is marked
        cancelled regardless.
        """
        entry = self.registry.get(run_id)
        if entry is None:
            raise RunNotFound(run_id)

        run = entry.run
        was_running = run.status == RunStatus.RUNNING
        process = entry.process
        if process is not None:
            logger.warning("Run %s is running, killing pid %s...", run_id, process.pid)
            try:
                killed = process.terminate()
            except OSError:
                logger.exception("Kill request for pid %s failed", process.pid)
                killed = False
            if killed:
                logger.warning("Run %s was cancelled", run_id)
            else:
                logger.error(
                    "ALERT [kill_failed] run %s: failed to kill pid %s, check manually",
                    run_id, process.pid,
                )

        cancelled = run.model_copy(
            update={"status": RunStatus.CANCELLED, "outcome": RunOutcome.CANCELLED}
        )
        self.registry.upsert(cancelled)
        root = self.archive.root_of(run_id)
        if root is not None:
            self._persist(root, cancelled)
        return cancelled, was_running
