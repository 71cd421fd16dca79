"""Deterministic Sequence Generator - Seeded jitter for natural motion.

Every "random" choice in a performance (word timing jitter, blink period,
head sway periods) is drawn from a seeded stream so a given seed replays
the same performance. The stream is a sine hash: cheap, constant memory,
and reproducible per seed. Streams with different seeds are not
guaranteed to be uncorrelated.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from performer.animation.emotion import EmotionProfile

Sequence = Callable[[], float]


class SeededSequence:
    """Callable pseudo-random stream in [0, 1).

    Usage:
        random = SeededSequence(0.42)
        jitter = random() * 0.05
    """

    __slots__ = ("_seed", "_value")

    def __init__(self, seed: float) -> None:
        self._seed = seed
        self._value = seed * 10_000

    def __call__(self) -> float:
        self._value = math.sin(self._value + 0.12345) * 43758.5453
        return self._value - math.floor(self._value)

    @property
    def seed(self) -> float:
        """Seed this stream was created with."""
        return self._seed


def make_sequence(seed: float) -> Sequence:
    """Create a fresh seeded stream."""
    return SeededSequence(seed)


def derive_motion_seed(seed: float, emotion: "EmotionProfile") -> float:
    """Seed for secondary-motion jitter.

    Offsets the performance seed by the emotion's mouth energy so blink and
    sway jitter change with expression even at a fixed seed.
    """
    return seed + emotion.mouth_energy * 100
