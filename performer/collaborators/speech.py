"""Speech Synthesis Interface - Text-mode voice collaborator.

The engine never inspects synthesized audio: it hands the speech
subsystem an utterance and only listens for the single completion signal.
Timing of the mouth comes from the viseme timeline, not from the voice.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Protocol

from performer.animation.emotion import EmotionProfile
from performer.animation.viseme import clamp

SpeechEndCallback = Callable[[], None]

# Safe bands for voice parameters
PITCH_BAND = (0.6, 1.6)
RATE_BAND = (0.7, 1.5)
VOLUME_BAND = (0.4, 1.0)


@dataclass(frozen=True)
class Utterance:
    """Voice configuration for one spoken line."""

    text: str
    pitch: float = 1.0
    rate: float = 1.0
    volume: float = 1.0


def voice_for_emotion(text: str, emotion: EmotionProfile) -> Utterance:
    """Derive pitch/rate/volume from emotion, each clamped to a safe band."""
    return Utterance(
        text=text,
        pitch=clamp(1 + emotion.brow_lift * 0.5, *PITCH_BAND),
        rate=clamp(1 + (emotion.mouth_energy - 0.5) * 0.4, *RATE_BAND),
        volume=clamp(0.8 + emotion.hand_amplitude * 0.3, *VOLUME_BAND),
    )


class SpeechSynthesizer(Protocol):
    """Protocol for speech-synthesis backends.

    Usage:
        if speech.is_available:
            speech.cancel()
            speech.speak(utterance, on_end=engine_stop)
    """

    @property
    def is_available(self) -> bool:
        """Whether speech synthesis is supported on this host."""
        ...

    def speak(self, utterance: Utterance, on_end: SpeechEndCallback) -> None:
        """Begin speaking; on_end fires once when the utterance finishes."""
        ...

    def cancel(self) -> None:
        """Cancel any in-flight utterance. Always safe to call."""
        ...


class MockSpeechSynthesizer:
    """Speech backend for tests and headless runs.

    Completes each utterance after a fixed delay (or only when finish() is
    called if no delay is set). Cancelled utterances never signal completion.
    """

    def __init__(self, available: bool = True, duration_s: float | None = None) -> None:
        self._available = available
        self._duration_s = duration_s
        self._on_end: SpeechEndCallback | None = None
        self._timer: asyncio.TimerHandle | None = None
        self.spoken: list[Utterance] = []
        self.cancel_count = 0

    @property
    def is_available(self) -> bool:
        """Whether speech synthesis is supported."""
        return self._available

    @property
    def is_speaking(self) -> bool:
        """Whether an utterance is in flight."""
        return self._on_end is not None

    def speak(self, utterance: Utterance, on_end: SpeechEndCallback) -> None:
        """Record the utterance and arm its completion."""
        self.spoken.append(utterance)
        self._on_end = on_end
        if self._duration_s is not None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self._duration_s, self.finish)

    def cancel(self) -> None:
        """Drop the in-flight utterance without signalling."""
        self.cancel_count += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._on_end = None

    def finish(self) -> None:
        """Complete the in-flight utterance."""
        on_end, self._on_end = self._on_end, None
        self._timer = None
        if on_end is not None:
            on_end()
