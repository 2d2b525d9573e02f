import asyncio
from typing import Optional

from jmrunner.core.errors import ProcessSpawnError

from .base import ExitStatus, ProcessHandle, ProcessRunner

SIGTERM = 15


class MockProcessHandle(ProcessHandle):
    def __init__(self, pid: int, args: list[str], cwd: str):
        self._pid = pid
        self.args = args
        self.cwd = cwd
        self.terminate_calls = 0
        self.kill_succeeds = True
        self._exit: asyncio.Future | None = None

    @property
    def pid(self) -> Optional[int]:
        return self._pid

    def _future(self) -> asyncio.Future:
        if self._exit is None:
            self._exit = asyncio.get_running_loop().create_future()
        return self._exit

    async def wait(self) -> ExitStatus:
        return await self._future()

    def finish(self, code: int = 0, signal: Optional[int] = None) -> None:
        """Simulate the process ending on its own (or by an outside signal)."""
        future = self._future()
        if not future.done():
            future.set_result(ExitStatus(code=None if signal else code, signal=signal))

    def terminate(self) -> bool:
        self.terminate_calls += 1
        if not self.kill_succeeds:
            return False
        self.finish(signal=SIGTERM)
        return True

    @property
    def finished(self) -> bool:
        return self._exit is not None and self._exit.done()


class MockProcessRunner(ProcessRunner):
    def __init__(self, output: str = "Creating summariser <summary>\n"):
        self.calls: list[tuple[str, tuple, dict]] = []
        self.handles: list[MockProcessHandle] = []
        self.output = output
        self.fail_spawn = False
        self._next_pid = 4000

    async def spawn(self, args: list[str], cwd: str, log_path: str) -> ProcessHandle:
        self.calls.append(("spawn", (args, cwd, log_path), {}))
        if self.fail_spawn:
            raise ProcessSpawnError(f"Cannot start {args[0]}: mock failure")
        with open(log_path, "a", encoding="utf-8") as log:
            log.write(self.output)
        handle = MockProcessHandle(self._next_pid, args, cwd)
        self._next_pid += 1
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> MockProcessHandle:
        return self.handles[-1]
