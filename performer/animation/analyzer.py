"""Audio Energy Analyzer - Mouth driver for uploaded audio.

A coarse envelope follower: root-mean-square energy of the latest
time-domain window mapped straight to mouth openness and width. No
spectral or phoneme analysis.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from performer.animation.emotion import EmotionProfile
from performer.animation.viseme import clamp


def rms_from_bytes(buffer: np.ndarray | bytes | bytearray) -> float:
    """RMS of an unsigned 8-bit time-domain buffer (128 = silence).

    Each sample is centered and normalized to [-1, 1] before squaring.
    An empty buffer is silence.
    """
    if isinstance(buffer, (bytes, bytearray)):
        samples = np.frombuffer(buffer, dtype=np.uint8)
    else:
        samples = np.asarray(buffer)
    if samples.size == 0:
        return 0.0
    values = (samples.astype(np.float64) - 128.0) / 128.0
    return float(np.sqrt(np.mean(values * values)))


def rms_from_float(buffer: np.ndarray) -> float:
    """RMS of a float time-domain buffer already in [-1, 1]."""
    samples = np.asarray(buffer, dtype=np.float64)
    if samples.size == 0:
        return 0.0
    samples = np.clip(samples, -1.0, 1.0)
    return float(np.sqrt(np.mean(samples * samples)))


@dataclass(frozen=True)
class EnergyReading:
    """One analyzer tick."""

    rms: float
    mouth: float
    width: float


class AudioEnergyAnalyzer:
    """Maps live audio energy to mouth openness and width.

    Usage:
        analyzer = AudioEnergyAnalyzer()
        reading = analyzer.analyze(tap.read_time_domain(), emotion)
        compositor.compose(ts, elapsed, reading.mouth, reading.width)
    """

    def analyze(
        self,
        buffer: np.ndarray | bytes | bytearray,
        emotion: EmotionProfile,
    ) -> EnergyReading:
        """Analyze an 8-bit time-domain buffer."""
        return self.reading_for_rms(rms_from_bytes(buffer), emotion)

    def analyze_float(self, buffer: np.ndarray, emotion: EmotionProfile) -> EnergyReading:
        """Analyze a float buffer in [-1, 1]."""
        return self.reading_for_rms(rms_from_float(buffer), emotion)

    @staticmethod
    def reading_for_rms(rms: float, emotion: EmotionProfile) -> EnergyReading:
        """Map an RMS value to mouth/width.

        Silence still leaves the mouth slightly open in proportion to the
        emotion's energy.
        """
        return EnergyReading(
            rms=rms,
            mouth=clamp(rms * 4 + emotion.mouth_energy * 0.35, 0.05, 1.0),
            width=clamp(rms * 2.8 + 0.25, 0.05, 0.9),
        )
