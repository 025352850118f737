"""Turn state machine."""

import time
from enum import Enum

from chandler.errors import EngineError
from chandler.observability.logging import get_logger
from chandler.observability.metrics import TURN_STAGE_LATENCY

logger = get_logger(__name__)


class TurnState(str, Enum):
    """Stages of a single conversation turn."""

    RECEIVED = "RECEIVED"
    INTENT_DETECTED = "INTENT_DETECTED"
    CONTEXT_ENRICHED = "CONTEXT_ENRICHED"
    INPUT_VALIDATED = "INPUT_VALIDATED"
    ACTIONS_SELECTED = "ACTIONS_SELECTED"
    ACTIONS_EXECUTED = "ACTIONS_EXECUTED"
    OUTPUT_VALIDATED = "OUTPUT_VALIDATED"
    RESPONSE_FORMATTED = "RESPONSE_FORMATTED"
    EMITTED = "EMITTED"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    UNAUTHORIZED = "UNAUTHORIZED"


TERMINAL_STATES = frozenset(
    {TurnState.COMPLETED, TurnState.ERROR, TurnState.RATE_LIMITED, TurnState.UNAUTHORIZED}
)

_PIPELINE = [
    TurnState.RECEIVED,
    TurnState.INTENT_DETECTED,
    TurnState.CONTEXT_ENRICHED,
    TurnState.INPUT_VALIDATED,
    TurnState.ACTIONS_SELECTED,
    TurnState.ACTIONS_EXECUTED,
    TurnState.OUTPUT_VALIDATED,
    TurnState.RESPONSE_FORMATTED,
    TurnState.EMITTED,
]

TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    state: frozenset({following, TurnState.ERROR})
    for state, following in zip(_PIPELINE, _PIPELINE[1:], strict=False)
}
TRANSITIONS[TurnState.RECEIVED] |= {TurnState.RATE_LIMITED}
TRANSITIONS[TurnState.ACTIONS_SELECTED] |= {TurnState.UNAUTHORIZED}
TRANSITIONS[TurnState.EMITTED] = frozenset({TurnState.COMPLETED, TurnState.ERROR})
for _terminal in TERMINAL_STATES:
    TRANSITIONS[_terminal] = frozenset()


class TurnStateMachine:
    """Tracks one turn through its stages.

    Illegal transitions raise EngineError. Time spent in each stage is
    recorded under the name of the state being left.
    """

    def __init__(self, thread_id: str, clock=time.perf_counter) -> None:
        self.thread_id = thread_id
        self._clock = clock
        self.state = TurnState.RECEIVED
        self.history: list[TurnState] = [TurnState.RECEIVED]
        self.timings: dict[str, float] = {}
        self._entered_at = clock()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def can_transition(self, target: TurnState) -> bool:
        return target in TRANSITIONS[self.state]

    def transition(self, target: TurnState) -> None:
        if not self.can_transition(target):
            raise EngineError(
                f"Illegal turn transition {self.state.value} -> {target.value}",
                {"thread_id": self.thread_id, "from": self.state.value, "to": target.value},
            )
        now = self._clock()
        elapsed_ms = (now - self._entered_at) * 1000
        stage = self.state.value.lower()
        self.timings[stage] = round(self.timings.get(stage, 0.0) + elapsed_ms, 3)
        TURN_STAGE_LATENCY.labels(stage=stage).observe(elapsed_ms / 1000)

        logger.debug(
            "turn_transition",
            thread_id=self.thread_id,
            from_state=self.state.value,
            to_state=target.value,
            elapsed_ms=round(elapsed_ms, 3),
        )
        self.state = target
        self.history.append(target)
        self._entered_at = now

    def fail(self) -> None:
        """Move to ERROR from any non-terminal state."""
        if not self.is_terminal:
            self.transition(TurnState.ERROR)
