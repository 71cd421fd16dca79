"""Viseme Timeline - Mouth-shape synthesis from bare text.

When no recorded audio exists, the mouth signal comes from a synthesized
timeline: each word becomes a peak (time, openness, width) and every output
sample sums the Gaussian-weighted contribution of all peaks. The result is
word-synchronized mouth bursts with smooth attack/decay between words.
This is a plausible approximation, not phonetic ground truth.

The synthesis is O(samples x words); both stay small for a spoken line.
"""

from __future__ import annotations

import bisect
import math
import re
from dataclasses import dataclass
from typing import Any

from performer.animation.emotion import EmotionProfile
from performer.animation.sequence import make_sequence
from performer.config.constants import ENGINE

_VOWELS = re.compile(r"[aeiouy]", re.IGNORECASE)
_STRONG_CONSONANTS = re.compile(r"[pbmfvl]", re.IGNORECASE)

# Returned by sample_viseme when no timeline exists
IDLE_MOUTH = 0.1
IDLE_WIDTH = 0.3


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp value into [lo, hi]."""
    return min(max(value, lo), hi)


@dataclass(frozen=True)
class VisemeFrame:
    """Mouth target at a point in time."""

    time: float  # Seconds from session start
    mouth: float  # Openness in [0, 1]
    width: float  # Width in [0, 1]

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary for serialization."""
        return {"time": self.time, "mouth": self.mouth, "width": self.width}


@dataclass(frozen=True)
class Timeline:
    """Ordered viseme frames plus total duration."""

    frames: tuple[VisemeFrame, ...]
    duration: float

    def __len__(self) -> int:
        return len(self.frames)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "duration": self.duration,
            "frame_count": len(self.frames),
            "frames": [f.to_dict() for f in self.frames],
        }


@dataclass(frozen=True)
class _Peak:
    time: float
    mouth: float
    width: float


def split_words(text: str) -> list[str]:
    """Normalize whitespace and split into words."""
    return text.split()


def estimate_word_duration(emotion: EmotionProfile) -> float:
    """Nominal seconds per word.

    Higher mouth energy and bigger gestures speak faster.
    """
    energy_offset = (emotion.mouth_energy - 0.5) * 0.2
    hand_offset = emotion.hand_amplitude * 0.05
    return clamp(
        ENGINE.WORD_DURATION_BASE_S - energy_offset - hand_offset,
        ENGINE.WORD_DURATION_MIN_S,
        ENGINE.WORD_DURATION_MAX_S,
    )


def _fallback_timeline(random, sample_rate: int) -> Timeline:
    """Low-amplitude idle mouth noise for empty text."""
    duration = ENGINE.FALLBACK_DURATION_S
    frame_count = math.floor(duration * sample_rate)
    frames = []
    for i in range(frame_count):
        mouth = 0.2 + random() * 0.15
        width = 0.3 + random() * 0.15
        frames.append(VisemeFrame(time=i / sample_rate, mouth=mouth, width=width))
    return Timeline(frames=tuple(frames), duration=duration)


def _word_peak(
    word: str,
    index: int,
    word_duration: float,
    duration: float,
    emotion: EmotionProfile,
    random,
) -> _Peak:
    vowel_count = len(_VOWELS.findall(word)) or 1
    vowel_weight = vowel_count / len(word)
    consonant_strength = len(_STRONG_CONSONANTS.findall(word)) * 0.15
    base = 0.45 + (emotion.mouth_energy - 0.5) * 0.4
    # Draw order (noise, then time jitter) is part of the reproducible stream
    noise = (random() - 0.5) * 0.25
    time = clamp(index * word_duration + random() * 0.05, 0.0, duration)
    return _Peak(
        time=time,
        mouth=clamp(base + vowel_weight * 0.35 + consonant_strength + noise, 0.0, 1.0),
        width=clamp(0.35 + vowel_weight * 0.2 + (emotion.mouth_energy - 0.5), 0.0, 1.0),
    )


def build_viseme_timeline(
    text: str,
    emotion: EmotionProfile,
    seed: float,
    sample_rate: int = ENGINE.VISEME_SAMPLE_RATE,
) -> Timeline:
    """Synthesize a mouth timeline for text.

    Args:
        text: Script to speak (may be empty or whitespace only)
        emotion: Expression profile biasing speed and amplitude
        seed: Seed for the jitter stream
        sample_rate: Output samples per second

    Returns:
        Timeline with at least one frame and duration >= 2 seconds.
        Identical inputs give a bit-identical timeline.
    """
    words = split_words(text)
    random = make_sequence(seed)

    if not words:
        return _fallback_timeline(random, sample_rate)

    word_duration = estimate_word_duration(emotion)
    duration = max(
        len(words) * word_duration + ENGINE.TIMELINE_TAIL_S,
        ENGINE.TIMELINE_MIN_DURATION_S,
    )
    frame_count = math.floor(duration * sample_rate)

    peaks = [
        _word_peak(word, index, word_duration, duration, emotion, random)
        for index, word in enumerate(words)
    ]

    frames = []
    for k in range(frame_count):
        t = k / sample_rate
        mouth = 0.12
        width = 0.3
        for peak in peaks:
            diff = t - peak.time
            influence = math.exp(-(diff * diff) / ENGINE.PEAK_KERNEL_WIDTH)
            mouth += peak.mouth * influence
            width += peak.width * influence * 0.7
        mouth *= 0.55 + random() * 0.1
        width *= 0.45 + random() * 0.1
        frames.append(
            VisemeFrame(
                time=t,
                mouth=clamp(mouth, 0.05, 1.0),
                width=clamp(width, 0.05, 0.95),
            )
        )

    return Timeline(frames=tuple(frames), duration=duration)


def sample_viseme(
    frames: tuple[VisemeFrame, ...] | list[VisemeFrame],
    elapsed: float,
) -> tuple[float, float]:
    """Interpolate (mouth, width) at elapsed seconds.

    Holds the last frame past the end of the timeline and never
    extrapolates. Does not mutate frames.
    """
    if not frames:
        return IDLE_MOUTH, IDLE_WIDTH

    last = frames[-1]
    if elapsed >= last.time:
        return last.mouth, last.width

    # First frame with time >= elapsed
    index = bisect.bisect_left(frames, elapsed, key=lambda f: f.time)
    if index <= 0:
        first = frames[0]
        return first.mouth, first.width

    prev = frames[index - 1]
    current = frames[index]
    span = (current.time - prev.time) or 1.0
    weight = clamp((elapsed - prev.time) / span, 0.0, 1.0)
    return (
        prev.mouth + (current.mouth - prev.mouth) * weight,
        prev.width + (current.width - prev.width) * weight,
    )
