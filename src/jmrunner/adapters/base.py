from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ExitStatus:
    """How a process ended: an exit code, or the signal that killed it."""

    code: Optional[int] = None
    signal: Optional[int] = None

    @property
    def signalled(self) -> bool:
        return self.signal is not None


class ProcessHandle(ABC):
    @property
    @abstractmethod
    def pid(self) -> Optional[int]:
        """OS process id, if known."""

    @abstractmethod
    async def wait(self) -> ExitStatus:
        """Wait for the process to end."""

    @abstractmethod
    def terminate(self) -> bool:
        """Request termination. Returns False if the request could not be delivered."""


class ProcessRunner(ABC):
    @abstractmethod
    async def spawn(self, args: list[str], cwd: str, log_path: str) -> ProcessHandle:
        """Start a process in cwd with combined output appended to log_path.

        Raises ProcessSpawnError if the executable cannot be started.
        """
