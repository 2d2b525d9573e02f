"""Local process runner built on asyncio subprocesses."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from jmrunner.core.errors import ProcessSpawnError

from .base import ExitStatus, ProcessHandle, ProcessRunner

logger = logging.getLogger(__name__)


class LocalProcessHandle(ProcessHandle):
    def __init__(self, proc: asyncio.subprocess.Process):
        self._proc = proc

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid

    async def wait(self) -> ExitStatus:
        returncode = await self._proc.wait()
        # asyncio reports death-by-signal as a negative return code
        if returncode < 0:
            return ExitStatus(signal=-returncode)
        return ExitStatus(code=returncode)

    def terminate(self) -> bool:
        try:
            self._proc.terminate()
            return True
        except ProcessLookupError:
            logger.warning("Process %s already exited", self._proc.pid)
            return False


class LocalProcessRunner(ProcessRunner):
    async def spawn(self, args: list[str], cwd: str, log_path: str) -> ProcessHandle:
        try:
            # The child inherits its own copy of the descriptor, so the log
            # can be closed here once the process is started.
            with open(log_path, "ab") as log:
                proc = await asyncio.create_subprocess_exec(
                    *args,
                    cwd=cwd,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=log,
                    stderr=asyncio.subprocess.STDOUT,
                )
        except OSError as exc:
            raise ProcessSpawnError(f"Cannot start {args[0]}: {exc}") from exc
        logger.info("Started %s (pid %s) in %s", args[0], proc.pid, cwd)
        return LocalProcessHandle(proc)
