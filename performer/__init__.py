"""Performer - Real-time drive engine for a virtual performer."""

__version__ = "0.3.0"

from performer.exceptions import (
    CaptureError,
    ConfigurationError,
    InvalidEmotionError,
    PerformerError,
    PlaybackError,
    PlaybackStateError,
    TranscodeError,
)

__all__ = [
    "__version__",
    "CaptureError",
    "ConfigurationError",
    "InvalidEmotionError",
    "PerformerError",
    "PlaybackError",
    "PlaybackStateError",
    "TranscodeError",
]
