"""Animation package - Mouth drivers and pose compositing.

Provides:
- Seeded jitter stream
- Emotion profile
- Viseme timeline synthesis and sampling (text driver)
- Audio energy analyzer (audio driver)
- Twelve-channel pose and the per-frame compositor
"""

from performer.animation.analyzer import (
    AudioEnergyAnalyzer,
    EnergyReading,
    rms_from_bytes,
    rms_from_float,
)
from performer.animation.compositor import PoseCompositor
from performer.animation.emotion import NEUTRAL_EMOTION, EmotionProfile
from performer.animation.pose import CHANNEL_RANGES, INITIAL_POSE, Pose
from performer.animation.sequence import (
    SeededSequence,
    derive_motion_seed,
    make_sequence,
)
from performer.animation.viseme import (
    Timeline,
    VisemeFrame,
    build_viseme_timeline,
    estimate_word_duration,
    sample_viseme,
    split_words,
)

__all__ = [
    # Analyzer
    "AudioEnergyAnalyzer",
    "EnergyReading",
    "rms_from_bytes",
    "rms_from_float",
    # Compositor
    "PoseCompositor",
    # Emotion
    "NEUTRAL_EMOTION",
    "EmotionProfile",
    # Pose
    "CHANNEL_RANGES",
    "INITIAL_POSE",
    "Pose",
    # Sequence
    "SeededSequence",
    "derive_motion_seed",
    "make_sequence",
    # Viseme
    "Timeline",
    "VisemeFrame",
    "build_viseme_timeline",
    "estimate_word_duration",
    "sample_viseme",
    "split_words",
]
