"""In-memory run registry: the source of truth while a process is alive."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from jmrunner.adapters.base import ProcessHandle
from jmrunner.models import Run, RunStatus


@dataclass(frozen=True)
class RegistryEntry:
    run: Run
    process: Optional[ProcessHandle] = None


class RunRegistry:
    """Maps run id to (run, live process handle).

    Entries are never updated in place; ``upsert`` swaps the whole entry.
    """

    def __init__(self):
        self._entries: dict[str, RegistryEntry] = {}

    def upsert(self, run: Run, process: Optional[ProcessHandle] = None) -> RegistryEntry:
        entry = RegistryEntry(run=run, process=process)
        self._entries[run.id] = entry
        return entry

    def get(self, run_id: str) -> Optional[RegistryEntry]:
        return self._entries.get(run_id)

    def list(self) -> list[RegistryEntry]:
        return list(self._entries.values())

    def remove(self, run_id: str) -> None:
        self._entries.pop(run_id, None)

    def with_status(self, status: RunStatus) -> list[Run]:
        return [e.run for e in self._entries.values() if e.run.status == status]

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
