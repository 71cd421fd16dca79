"""Recording Interface - Capture of the rendering surface during export.

The rendering collaborator exposes a capturable surface; the recorder
consumes a CaptureStream (surface video plus an optional audio track) and
delivers data chunks. The engine assembles the chunks into one Clip.
A recorder is created fresh for every export and released afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from performer.animation.pose import Pose
from performer.collaborators.audio import AudioTrack

ChunkCallback = Callable[[bytes], None]
PoseListener = Callable[[Pose], None]


@dataclass(frozen=True)
class VideoTrack:
    """Capturable video track of a drawing surface."""

    label: str
    fps: int
    handle: Any = None


@dataclass
class CaptureStream:
    """Tracks handed to a recorder."""

    video: VideoTrack
    audio: AudioTrack | None = None

    def add_audio_track(self, track: AudioTrack) -> None:
        """Attach an audio track."""
        self.audio = track

    @property
    def has_audio(self) -> bool:
        """Whether an audio track is attached."""
        return self.audio is not None


@dataclass(frozen=True)
class Clip:
    """A captured or re-encoded video clip."""

    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        """Clip size in bytes."""
        return len(self.data)

    @property
    def extension(self) -> str:
        """File extension for downloads."""
        base = self.mime_type.split(";", 1)[0]
        return base.split("/", 1)[-1]


class RenderSurface(Protocol):
    """Protocol for the rendering collaborator's drawing surface."""

    def capture_stream(self, fps: int) -> VideoTrack:
        """Start capturing the surface at fps."""
        ...


class MediaRecorder(Protocol):
    """Protocol for a single-use recording device."""

    def start(self) -> None:
        """Begin recording."""
        ...

    async def stop(self) -> None:
        """Stop recording; all chunks are delivered before this returns."""
        ...


RecorderFactory = Callable[[CaptureStream, str, ChunkCallback], MediaRecorder]


@dataclass
class ClipAssembler:
    """Collects recorder chunks and concatenates them into one clip.

    Empty chunks are skipped.
    """

    mime_type: str
    chunks: list[bytes] = field(default_factory=list)

    def push(self, chunk: bytes) -> None:
        """Append a delivered chunk."""
        if chunk:
            self.chunks.append(chunk)

    @property
    def size(self) -> int:
        """Bytes collected so far."""
        return sum(len(c) for c in self.chunks)

    def clip(self) -> Clip:
        """Concatenate all chunks."""
        container = self.mime_type.split(";", 1)[0]
        return Clip(data=b"".join(self.chunks), mime_type=container)
