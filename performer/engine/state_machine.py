"""Playback State Machine - Lifecycle of one engine's sessions.

States:
- IDLE: No session; the pose holds its last value
- STARTING: A start call is acquiring its driver
- PLAYING: Clock running, driver feeding the compositor
- EXPORTING: PLAYING while the surface is being recorded
- STOPPED: Session ended by a caller (stop, supersede, export window)
- COMPLETED: Session ended by its driver (speech end, media end, timeline end)

STOPPED and COMPLETED are transient: the engine moves on to IDLE in the
same call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from performer.exceptions import PlaybackStateError
from performer.observability.logging import get_logger

logger = get_logger(__name__)


class PlaybackState(Enum):
    """Engine playback state."""

    IDLE = "idle"
    STARTING = "starting"
    PLAYING = "playing"
    EXPORTING = "exporting"
    STOPPED = "stopped"
    COMPLETED = "completed"


# Valid state transitions
VALID_TRANSITIONS: dict[PlaybackState, set[PlaybackState]] = {
    PlaybackState.IDLE: {PlaybackState.STARTING},
    PlaybackState.STARTING: {
        PlaybackState.PLAYING,
        PlaybackState.EXPORTING,
        PlaybackState.STOPPED,
    },
    PlaybackState.PLAYING: {
        PlaybackState.STARTING,
        PlaybackState.STOPPED,
        PlaybackState.COMPLETED,
    },
    PlaybackState.EXPORTING: {PlaybackState.STOPPED, PlaybackState.COMPLETED},
    PlaybackState.STOPPED: {PlaybackState.IDLE},
    PlaybackState.COMPLETED: {PlaybackState.IDLE},
}

ACTIVE_STATES = frozenset(
    {PlaybackState.STARTING, PlaybackState.PLAYING, PlaybackState.EXPORTING}
)


@dataclass
class StateTransition:
    """Record of a state transition."""

    old_state: PlaybackState
    new_state: PlaybackState
    t_ms: float
    reason: str
    metadata: dict = field(default_factory=dict)


StateChangeCallback = Callable[[StateTransition], None]


class PlaybackStateMachine:
    """Playback FSM.

    Transitions are synchronous: the engine runs single-threaded on one
    event loop and every completion signal lands on that loop.

    Usage:
        fsm = PlaybackStateMachine(clock=scheduler.now_ms)
        fsm.on_state_change(log_transition)
        fsm.transition_to(PlaybackState.STARTING, "start_preview")
    """

    def __init__(self, clock: Callable[[], float]) -> None:
        self._state = PlaybackState.IDLE
        self._clock = clock
        self._on_change_callbacks: list[StateChangeCallback] = []
        self._history: list[StateTransition] = []
        self._max_history = 100

    @property
    def state(self) -> PlaybackState:
        """Current state."""
        return self._state

    @property
    def is_active(self) -> bool:
        """Whether a session is starting or running."""
        return self._state in ACTIVE_STATES

    def can_transition(self, new_state: PlaybackState) -> bool:
        """Whether new_state is reachable from the current state."""
        return new_state in VALID_TRANSITIONS.get(self._state, set())

    def on_state_change(self, callback: StateChangeCallback) -> None:
        """Register callback for any state change."""
        self._on_change_callbacks.append(callback)

    def transition_to(
        self,
        new_state: PlaybackState,
        reason: str = "",
        metadata: dict | None = None,
    ) -> StateTransition:
        """Transition to a new state.

        Raises:
            PlaybackStateError: If the transition is not allowed
        """
        old_state = self._state
        if not self.can_transition(new_state):
            raise PlaybackStateError(old_state.value, new_state.value)

        transition = StateTransition(
            old_state=old_state,
            new_state=new_state,
            t_ms=self._clock(),
            reason=reason,
            metadata=metadata or {},
        )
        self._state = new_state

        for callback in self._on_change_callbacks:
            try:
                callback(transition)
            except Exception as e:
                # Listener errors must not wedge playback
                logger.warning(
                    "state_callback_error",
                    new_state=new_state.value,
                    error=str(e),
                )

        self._history.append(transition)
        if len(self._history) > self._max_history:
            self._history.pop(0)

        return transition

    @property
    def history(self) -> list[StateTransition]:
        """Transition history (most recent last)."""
        return self._history.copy()
