"""Engine Constants - Fixed behavioural contracts of the performance engine.

These values shape the look of a performance (timeline sampling, completion
trailing buffer, export window) and are shared by the synthesizer, the
compositor and the playback controller. Tunable runtime values live in
settings.py; the constants here are the defaults those settings start from.
"""

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class EngineConstants:
    """Immutable engine thresholds.

    Timing values in seconds unless the name says otherwise.
    """

    # Viseme timeline synthesis
    VISEME_SAMPLE_RATE: Final[int] = 60  # Timeline samples per second
    WORD_DURATION_BASE_S: Final[float] = 0.42
    WORD_DURATION_MIN_S: Final[float] = 0.28
    WORD_DURATION_MAX_S: Final[float] = 0.6
    TIMELINE_TAIL_S: Final[float] = 1.2  # Added after the last word
    TIMELINE_MIN_DURATION_S: Final[float] = 2.0
    FALLBACK_DURATION_S: Final[float] = 2.5  # Idle-mouth timeline for empty text
    PEAK_KERNEL_WIDTH: Final[float] = 0.08  # exp(-(dt^2) / width)

    # Playback
    FRAME_RATE: Final[int] = 60  # Animation ticks per second
    COMPLETION_BUFFER_S: Final[float] = 0.4  # Trailing hold before text sessions end
    DEFAULT_SCRIPT: Final[str] = "Hello, the stage is ready."
    MAX_SCRIPT_CHARS: Final[int] = 1000  # Synthesis cost grows with words squared

    # Audio analysis
    ANALYSER_FFT_SIZE: Final[int] = 2048
    ANALYSER_WINDOW: Final[int] = 1024  # FFT size / 2

    # Export
    EXPORT_DURATION_MS: Final[int] = 8000
    CAPTURE_FPS: Final[int] = 60
    CAPTURE_MIME_TYPE: Final[str] = "video/webm;codecs=vp9"
    TRANSCODE_TIMEOUT_S: Final[float] = 60.0


# Singleton instance for import convenience
ENGINE = EngineConstants()
