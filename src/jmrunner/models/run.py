from typing import Optional

from pydantic import BaseModel

from .enums import RunOutcome, RunStatus


class Run(BaseModel):
    """One execution attempt of a submitted test plan.

    Instances are treated as immutable: every state change produces a new
    Run via ``model_copy(update=...)``.
    """

    id: str
    name: str
    category: Optional[str] = None
    timestamp: str
    status: RunStatus = RunStatus.QUEUED
    code: Optional[int] = None
    duration: Optional[float] = None
    outcome: Optional[RunOutcome] = None

    @property
    def is_active(self) -> bool:
        return self.status in (RunStatus.QUEUED, RunStatus.RUNNING)


class Overview(BaseModel):
    queued: list[Run] = []
    current: Optional[Run] = None
    # category -> test name -> runs, oldest first
    completed: dict[str, dict[str, list[Run]]] = {}
