"""Engine package - Playback/export controller and its session model."""

from performer.engine.controller import PerformanceEngine
from performer.engine.session import (
    ActiveSession,
    AudioSession,
    ExportSession,
    StopReason,
    TextSession,
    VoiceMode,
)
from performer.engine.state_machine import (
    VALID_TRANSITIONS,
    PlaybackState,
    PlaybackStateMachine,
    StateTransition,
)

__all__ = [
    "PerformanceEngine",
    # Sessions
    "ActiveSession",
    "AudioSession",
    "ExportSession",
    "StopReason",
    "TextSession",
    "VoiceMode",
    # State machine
    "VALID_TRANSITIONS",
    "PlaybackState",
    "PlaybackStateMachine",
    "StateTransition",
]
