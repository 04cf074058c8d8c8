"""Finite State Machine for training run states."""

from enum import Enum, auto
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple


class RunState(Enum):
    """States of the training controller."""
    IDLE = auto()
    TRAINING = auto()
    FINISHED = auto()
    ERROR = auto()


# event -> (states it may fire from, resulting state)
RUN_EVENTS: Dict[str, Tuple[FrozenSet[RunState], RunState]] = {
    "start": (frozenset({RunState.IDLE, RunState.FINISHED}), RunState.TRAINING),
    "finish": (frozenset({RunState.TRAINING}), RunState.FINISHED),
    "fail": (frozenset({RunState.IDLE, RunState.TRAINING, RunState.FINISHED}), RunState.ERROR),
    "reset": (frozenset({RunState.FINISHED, RunState.ERROR}), RunState.IDLE),
}

_DESCRIPTIONS = {
    RunState.IDLE: "Ready - no training run yet",
    RunState.TRAINING: "Training agent with Q-Learning",
    RunState.FINISHED: "Training finished - results available",
    RunState.ERROR: "Last run failed - check the configuration",
}

StateListener = Callable[[Optional[Dict]], None]


class RunStateMachine:
    """Event-driven lifecycle of one training run at a time."""

    def __init__(self):
        self.current_state = RunState.IDLE
        self._listeners: Dict[RunState, List[StateListener]] = {}

    def on_enter(self, state: RunState, listener: StateListener):
        """Call `listener(context)` whenever `state` is entered."""
        self._listeners.setdefault(state, []).append(listener)

    def fire(self, event: str, context: Optional[Dict] = None) -> bool:
        """Apply an event; False (state unchanged) if it is not allowed now."""
        sources, target = RUN_EVENTS[event]
        if self.current_state not in sources:
            return False

        self.current_state = target
        for listener in self._listeners.get(target, []):
            listener(context)
        return True

    def start_training(self, context: Optional[Dict] = None) -> bool:
        return self.fire("start", context)

    def finish(self, context: Optional[Dict] = None) -> bool:
        return self.fire("finish", context)

    def fail_error(self, context: Optional[Dict] = None) -> bool:
        return self.fire("fail", context)

    def reset_to_idle(self, context: Optional[Dict] = None) -> bool:
        return self.fire("reset", context)

    def is_training(self) -> bool:
        return self.current_state == RunState.TRAINING

    def is_error(self) -> bool:
        return self.current_state == RunState.ERROR

    def can_start(self) -> bool:
        return self.current_state in RUN_EVENTS["start"][0]

    def get_state_description(self) -> str:
        return _DESCRIPTIONS[self.current_state]
