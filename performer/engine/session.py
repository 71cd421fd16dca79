"""Playback Sessions - State bound to one start call.

A session is one bounded start-to-stop lifetime of the animation clock.
The engine holds at most one at a time; the variant says which driver
feeds the mouth:

    TextSession   - synthesized viseme timeline
    AudioSession  - live analysis tap on the uploaded track
    ExportSession - either of the above while the surface is recorded
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union

from performer.animation.viseme import Timeline
from performer.collaborators.audio import AnalyserTap
from performer.timing.frame_loop import FrameRequest

VoiceMode = Literal["text", "audio"]


class StopReason(Enum):
    """Why a session ended."""

    USER_STOP = "user_stop"
    SPEECH_ENDED = "speech_ended"
    MEDIA_ENDED = "media_ended"
    TIMELINE_COMPLETE = "timeline_complete"
    EXPORT_WINDOW = "export_window"
    SUPERSEDED = "superseded"
    START_FAILED = "start_failed"
    SHUTDOWN = "shutdown"

    @property
    def is_natural(self) -> bool:
        """Ended by the driver rather than a caller."""
        return self in _NATURAL_ENDINGS


_NATURAL_ENDINGS = frozenset(
    {StopReason.SPEECH_ENDED, StopReason.MEDIA_ENDED, StopReason.TIMELINE_COMPLETE}
)


@dataclass(eq=False)
class TextSession:
    """Session driven by a synthesized timeline."""

    start_ms: float
    timeline: Timeline
    text: str
    frame: FrameRequest | None = field(default=None, repr=False)

    mode: VoiceMode = "text"

    @property
    def timeline_duration(self) -> float | None:
        """Duration used for natural completion."""
        return self.timeline.duration


@dataclass(eq=False)
class AudioSession:
    """Session driven by the analysis tap."""

    start_ms: float
    analyser: AnalyserTap
    frame: FrameRequest | None = field(default=None, repr=False)

    mode: VoiceMode = "audio"

    @property
    def timeline_duration(self) -> float | None:
        """Audio sessions end on the media "ended" signal instead."""
        return None


DriveSession = Union[TextSession, AudioSession]


@dataclass(eq=False)
class ExportSession:
    """A drive session started by export."""

    inner: DriveSession

    @property
    def mode(self) -> VoiceMode:
        return self.inner.mode

    @property
    def start_ms(self) -> float:
        return self.inner.start_ms

    @property
    def frame(self) -> FrameRequest | None:
        return self.inner.frame

    @frame.setter
    def frame(self, request: FrameRequest | None) -> None:
        self.inner.frame = request

    @property
    def timeline_duration(self) -> float | None:
        return self.inner.timeline_duration


ActiveSession = Union[TextSession, AudioSession, ExportSession]


def drive_of(session: ActiveSession) -> DriveSession:
    """Unwrap the driver of a session."""
    if isinstance(session, ExportSession):
        return session.inner
    return session
