from .enums import ControllerStatus, RunOutcome, RunStatus
from .run import Overview, Run

__all__ = [
    "ControllerStatus",
    "Overview",
    "Run",
    "RunOutcome",
    "RunStatus",
]
