"""Controller-wide scheduling state machine.

The transition function is pure: it maps (state, event) to a new state and
a list of effects. The caller executes the effects, so no status write can
re-enter the scheduler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from jmrunner.core.errors import InvalidTransition
from jmrunner.models import ControllerStatus


class SchedulerEvent(str, Enum):
    SUBMITTED = "submitted"
    RUN_STARTED = "run_started"
    SPAWN_FAILED = "spawn_failed"
    RUN_SUCCEEDED = "run_succeeded"
    RUN_FAILED = "run_failed"
    RUN_CANCELLED = "run_cancelled"
    RESUME = "resume"


class Effect(str, Enum):
    START_NEXT = "start_next"
    NOTIFY_PAUSED = "notify_paused"


@dataclass(frozen=True)
class Transition:
    state: ControllerStatus
    effects: tuple[Effect, ...] = field(default_factory=tuple)


IDLE = ControllerStatus.IDLE
RUNNING = ControllerStatus.RUNNING
PAUSED = ControllerStatus.PAUSED

_TRANSITIONS: dict[tuple[ControllerStatus, SchedulerEvent], Transition] = {
    (IDLE, SchedulerEvent.SUBMITTED): Transition(IDLE, (Effect.START_NEXT,)),
    (RUNNING, SchedulerEvent.SUBMITTED): Transition(RUNNING),
    (PAUSED, SchedulerEvent.SUBMITTED): Transition(PAUSED),
    (IDLE, SchedulerEvent.RUN_STARTED): Transition(RUNNING),
    (IDLE, SchedulerEvent.SPAWN_FAILED): Transition(PAUSED, (Effect.NOTIFY_PAUSED,)),
    (RUNNING, SchedulerEvent.RUN_SUCCEEDED): Transition(IDLE, (Effect.START_NEXT,)),
    (RUNNING, SchedulerEvent.RUN_FAILED): Transition(PAUSED, (Effect.NOTIFY_PAUSED,)),
    (RUNNING, SchedulerEvent.RUN_CANCELLED): Transition(PAUSED, (Effect.NOTIFY_PAUSED,)),
    (PAUSED, SchedulerEvent.RESUME): Transition(IDLE, (Effect.START_NEXT,)),
    (IDLE, SchedulerEvent.RESUME): Transition(IDLE),
    (RUNNING, SchedulerEvent.RESUME): Transition(RUNNING),
}


def transition(state: ControllerStatus, event: SchedulerEvent) -> Transition:
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(
            f"No transition from {state.value} on {event.value}"
        ) from None
