"""Working directories for runs, and archival from temp to permanent root.

Runs live under the temp root while queued or running and under the
permanent root once archived. The two roots may sit on different storage,
so archival is copy-then-delete, not a rename. A crash after the copy and
before the delete leaves the run in both roots; the next startup
reconciliation archives it again, overwriting the permanent copy.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil

from jmrunner.config import Settings
from jmrunner.core.errors import ArchivalError

logger = logging.getLogger(__name__)

TEST_NAME = "test.jmx"
REPORT_NAME = "report.jtl"
OUTPUT_NAME = "output.log"
RESULTS_FOLDER = "results"


def _subdirectories(root: str) -> list[str]:
    if not os.path.isdir(root):
        return []
    with os.scandir(root) as entries:
        return sorted(e.name for e in entries if e.is_dir())


class RunArchive:
    def __init__(self, settings: Settings):
        self.temp_root = os.path.abspath(settings.temp_folder_base)
        self.permanent_root = os.path.abspath(settings.test_folder_base)

    def ensure_roots(self) -> None:
        os.makedirs(self.temp_root, exist_ok=True)
        os.makedirs(self.permanent_root, exist_ok=True)

    def temp_dir(self, run_id: str) -> str:
        return os.path.join(self.temp_root, run_id)

    def permanent_dir(self, run_id: str) -> str:
        return os.path.join(self.permanent_root, run_id)

    def is_in_flight(self, run_id: str) -> bool:
        return os.path.isdir(self.temp_dir(run_id))

    def root_of(self, run_id: str) -> str | None:
        """Root currently holding the run's directory; temp wins during the copy window."""
        if os.path.isdir(self.temp_dir(run_id)):
            return self.temp_root
        if os.path.isdir(self.permanent_dir(run_id)):
            return self.permanent_root
        return None

    def output_log(self, run_id: str) -> str | None:
        root = self.root_of(run_id)
        if root is None:
            return None
        return os.path.join(root, run_id, OUTPUT_NAME)

    def temp_run_ids(self) -> list[str]:
        return _subdirectories(self.temp_root)

    def permanent_run_ids(self) -> list[str]:
        return _subdirectories(self.permanent_root)

    def create_working_dir(self, run_id: str, spec: bytes) -> str:
        folder = self.temp_dir(run_id)
        os.makedirs(folder)
        with open(os.path.join(folder, TEST_NAME), "wb") as f:
            f.write(spec)
        return folder

    def _copy_then_delete(self, run_id: str) -> None:
        source = self.temp_dir(run_id)
        target = self.permanent_dir(run_id)
        try:
            shutil.copytree(source, target, dirs_exist_ok=True)
        except (OSError, shutil.Error) as exc:
            raise ArchivalError(f"Cannot copy {source} to {target}: {exc}") from exc
        try:
            shutil.rmtree(source)
        except OSError as exc:
            raise ArchivalError(f"Copied {source} to {target} but cannot remove it: {exc}") from exc

    async def archive(self, run_id: str) -> None:
        """Move a run's working directory from the temp root to the permanent root.

        ArchivalError is raised when the copy fails, leaving the temp directory
        untouched, or when the copied temp directory cannot be removed. Either
        way the operator has to clean up by hand.
        """
        await asyncio.to_thread(self._copy_then_delete, run_id)
        logger.info("Archived run %s to %s", run_id, self.permanent_dir(run_id))

    def _remove_sync(self, run_id: str) -> bool:
        removed = False
        for folder in (self.permanent_dir(run_id), self.temp_dir(run_id)):
            if os.path.exists(folder):
                logger.info("Deleting run data at %s...", folder)
                shutil.rmtree(folder, ignore_errors=True)
                logger.warning("Deleted run data at %s", folder)
                removed = True
        return removed

    async def remove(self, run_id: str) -> bool:
        """Delete the run's directories from both roots. Returns True if any existed."""
        return await asyncio.to_thread(self._remove_sync, run_id)
