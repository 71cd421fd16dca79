"""Audio Collaborators - Uploaded media, playback and the analysis tap.

Three pieces:
- MediaHandle: an uploaded file held by the engine, released exactly once
- AudioSource: play/pause/seek, an "ended" signal and a live sample window
- AudioGraph: the process-wide device graph and its per-source analysis taps,
  created lazily and shared by every engine in the process

SampleFileAudioSource is a headless AudioSource: it decodes the upload with
soundfile and "plays" it against the monotonic clock, so the analysis tap
sees the window that would be audible right now.
"""

from __future__ import annotations

import asyncio
import io
import itertools
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol

import numpy as np
import soundfile as sf

from performer.config.constants import ENGINE
from performer.exceptions import CaptureError, PlaybackError
from performer.observability.logging import get_logger
from performer.timing.clock import get_monotonic_clock

logger = get_logger(__name__)

EndedCallback = Callable[[], None]

_handle_ids = itertools.count(1)


@dataclass(eq=False)
class MediaHandle:
    """Transient buffer for an uploaded track.

    Mirrors an object URL: valid until released, released exactly once.
    """

    name: str
    data: bytes
    handle_id: int = field(default_factory=lambda: next(_handle_ids))
    released: bool = False
    release_count: int = 0

    @classmethod
    def from_source(cls, source: str | Path | bytes, name: str | None = None) -> "MediaHandle":
        """Read a path or wrap raw bytes."""
        if isinstance(source, (bytes, bytearray)):
            return cls(name=name or "upload", data=bytes(source))
        path = Path(source)
        return cls(name=name or path.name, data=path.read_bytes())

    def release(self) -> bool:
        """Release the buffer.

        Returns:
            True on the first release, False if already released
        """
        if self.released:
            return False
        self.released = True
        self.release_count += 1
        self.data = b""
        return True


@dataclass(frozen=True)
class AudioTrack:
    """Capturable audio track of a playing source."""

    label: str
    sample_rate: int


class AudioSource(Protocol):
    """Protocol for the audio element collaborator."""

    @property
    def is_loaded(self) -> bool:
        """Whether a track is loaded."""
        ...

    @property
    def duration_s(self) -> float:
        """Loaded track duration."""
        ...

    def load(self, media: MediaHandle) -> None:
        """Load a track, replacing any previous one."""
        ...

    async def play(self) -> None:
        """Start or resume playback."""
        ...

    def pause(self) -> None:
        """Pause playback."""
        ...

    def seek(self, position_s: float) -> None:
        """Move the playhead."""
        ...

    def on_ended(self, callback: EndedCallback | None) -> None:
        """Register the "ended" signal handler."""
        ...

    def read_time_domain(self, window: int) -> np.ndarray:
        """Latest window of unsigned 8-bit samples (128 = silence)."""
        ...

    def capture_track(self) -> AudioTrack:
        """Audio track for recording; raises CaptureError if unavailable."""
        ...

    def close(self) -> None:
        """Unload and stop."""
        ...


def to_unsigned_bytes(samples: np.ndarray) -> np.ndarray:
    """Convert float samples in [-1, 1] to 8-bit time-domain data."""
    scaled = np.round(np.clip(samples, -1.0, 1.0) * 128.0 + 128.0)
    return np.clip(scaled, 0, 255).astype(np.uint8)


class SampleFileAudioSource:
    """Headless audio source backed by a decoded sample buffer.

    Usage:
        source = SampleFileAudioSource()
        source.load(MediaHandle.from_source("take.wav"))
        source.on_ended(engine_stop)
        await source.play()
        window = source.read_time_domain(1024)
    """

    def __init__(self) -> None:
        self._clock = get_monotonic_clock()
        self._samples: np.ndarray = np.zeros(0, dtype=np.float32)
        self._sample_rate: int = 0
        self._loaded = False
        self._playing = False
        self._offset_s = 0.0
        self._play_started_ms = 0.0
        self._ended_timer: asyncio.TimerHandle | None = None
        self._on_ended: EndedCallback | None = None

    @property
    def is_loaded(self) -> bool:
        """Whether a track is loaded."""
        return self._loaded

    @property
    def is_playing(self) -> bool:
        """Whether playback is running."""
        return self._playing

    @property
    def sample_rate(self) -> int:
        """Decoded sample rate."""
        return self._sample_rate

    @property
    def duration_s(self) -> float:
        """Loaded track duration in seconds."""
        if not self._sample_rate:
            return 0.0
        return len(self._samples) / self._sample_rate

    @property
    def position_s(self) -> float:
        """Current playhead position."""
        if not self._playing:
            return self._offset_s
        elapsed = (self._clock.now_ms() - self._play_started_ms) / 1000.0
        return min(self._offset_s + elapsed, self.duration_s)

    def load(self, media: MediaHandle) -> None:
        """Decode a track to mono float samples."""
        self.pause()
        try:
            data, sample_rate = sf.read(io.BytesIO(media.data), dtype="float32", always_2d=True)
        except (RuntimeError, TypeError, ValueError) as e:
            raise PlaybackError(
                f"Unable to decode audio: {media.name}",
                details={"name": media.name, "error": str(e)},
            ) from e
        self._samples = data.mean(axis=1)
        self._sample_rate = int(sample_rate)
        self._offset_s = 0.0
        self._loaded = True

    async def play(self) -> None:
        """Start playback from the current position."""
        if not self._loaded or self._playing:
            return
        self._playing = True
        self._play_started_ms = self._clock.now_ms()
        remaining = max(self.duration_s - self._offset_s, 0.0)
        loop = asyncio.get_running_loop()
        self._ended_timer = loop.call_later(remaining, self._handle_ended)

    def pause(self) -> None:
        """Pause and keep the playhead."""
        if not self._playing:
            return
        self._offset_s = self.position_s
        self._playing = False
        self._cancel_timer()

    def seek(self, position_s: float) -> None:
        """Move the playhead, restarting the ended timer if playing."""
        self._offset_s = min(max(position_s, 0.0), self.duration_s)
        if self._playing:
            self._cancel_timer()
            self._play_started_ms = self._clock.now_ms()
            loop = asyncio.get_running_loop()
            self._ended_timer = loop.call_later(
                self.duration_s - self._offset_s, self._handle_ended
            )

    def on_ended(self, callback: EndedCallback | None) -> None:
        """Register the "ended" handler (replaces any previous one)."""
        self._on_ended = callback

    def read_time_domain(self, window: int = ENGINE.ANALYSER_WINDOW) -> np.ndarray:
        """Window of samples ending at the playhead, as 8-bit data."""
        if not self._loaded or not self._playing:
            return np.full(window, 128, dtype=np.uint8)
        end = int(self.position_s * self._sample_rate)
        start = max(end - window, 0)
        chunk = self._samples[start:end]
        if len(chunk) < window:
            chunk = np.concatenate([np.zeros(window - len(chunk), dtype=np.float32), chunk])
        return to_unsigned_bytes(chunk)

    def capture_track(self) -> AudioTrack:
        """Audio track for the recorder."""
        if not self._loaded:
            raise CaptureError("audio", "no track loaded")
        return AudioTrack(label="playback", sample_rate=self._sample_rate)

    def close(self) -> None:
        """Stop and drop the decoded buffer."""
        self.pause()
        self._samples = np.zeros(0, dtype=np.float32)
        self._sample_rate = 0
        self._loaded = False
        self._on_ended = None

    def _cancel_timer(self) -> None:
        if self._ended_timer is not None:
            self._ended_timer.cancel()
            self._ended_timer = None

    def _handle_ended(self) -> None:
        self._ended_timer = None
        self._offset_s = self.duration_s
        self._playing = False
        if self._on_ended is not None:
            self._on_ended()


class AnalyserTap:
    """Analysis tap attached to an audio source."""

    def __init__(self, source: AudioSource, fft_size: int = ENGINE.ANALYSER_FFT_SIZE) -> None:
        self._source = source
        self._fft_size = fft_size

    @property
    def source(self) -> AudioSource:
        """Tapped source."""
        return self._source

    @property
    def window(self) -> int:
        """Samples returned per read (half the FFT size)."""
        return self._fft_size // 2

    def read_time_domain(self) -> np.ndarray:
        """Latest time-domain window."""
        return self._source.read_time_domain(self.window)


class AudioGraph:
    """Audio device graph with one analysis tap per source.

    Created suspended, resumed on first playback and closed only by its
    owner. Taps are created once per source and reused across sessions.
    """

    def __init__(self) -> None:
        self._state = "suspended"
        self._analysers: dict[AudioSource, AnalyserTap] = {}

    @property
    def state(self) -> str:
        """'suspended', 'running' or 'closed'."""
        return self._state

    @property
    def tap_count(self) -> int:
        """Number of attached taps."""
        return len(self._analysers)

    def analyser_for(self, source: AudioSource) -> AnalyserTap | None:
        """Tap attached to source, if any."""
        return self._analysers.get(source)

    def ensure_analyser(self, source: AudioSource) -> AnalyserTap | None:
        """Attach (once per source) and return the analysis tap."""
        if self._state == "closed":
            return None
        tap = self._analysers.get(source)
        if tap is None:
            tap = self._analysers[source] = AnalyserTap(source)
            logger.debug("audio_graph_analyser_created", taps=len(self._analysers))
        return tap

    def release_analyser(self, source: AudioSource) -> None:
        """Detach the tap for source."""
        if self._analysers.pop(source, None) is not None:
            logger.debug("audio_graph_analyser_released", taps=len(self._analysers))

    async def resume(self) -> None:
        """Resume a suspended graph."""
        if self._state == "suspended":
            self._state = "running"

    def close(self) -> None:
        """Tear down the graph."""
        self._analysers.clear()
        self._state = "closed"


_graph: AudioGraph | None = None


def get_audio_graph() -> AudioGraph:
    """Get the process-wide audio graph, creating it on first use."""
    global _graph
    if _graph is None or _graph.state == "closed":
        _graph = AudioGraph()
    return _graph
