"""Emotion Profile - Caller-supplied expression parameters.

An EmotionProfile biases both timeline synthesis (speaking speed, mouth
amplitude) and compositing (gesture size, gaze, brows). The engine only
reads it.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

from performer.exceptions import InvalidEmotionError

_UNIT_FIELDS = ("mouth_energy", "hand_amplitude", "gaze_intensity", "brow_lift")

_CAMEL_KEYS = {
    "mouthEnergy": "mouth_energy",
    "handAmplitude": "hand_amplitude",
    "gazeIntensity": "gaze_intensity",
    "browLift": "brow_lift",
}


@dataclass(frozen=True)
class EmotionProfile:
    """Immutable expression parameters.

    Numeric fields are in [0, 1]; color is an opaque display string that the
    engine carries through for renderers.
    """

    mouth_energy: float = 0.5
    hand_amplitude: float = 0.5
    gaze_intensity: float = 0.5
    brow_lift: float = 0.3
    color: str = "#8b9cff"
    id: str = "neutral"
    label: str = "Neutral"

    def __post_init__(self) -> None:
        for name in _UNIT_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise InvalidEmotionError(name, value, "must be a number")
            if not 0.0 <= value <= 1.0:
                raise InvalidEmotionError(name, value, "must be within [0, 1]")

    def to_dict(self) -> dict[str, Any]:
        """Convert to camelCase dictionary for renderers."""
        return {
            "id": self.id,
            "label": self.label,
            "mouthEnergy": self.mouth_energy,
            "handAmplitude": self.hand_amplitude,
            "gazeIntensity": self.gaze_intensity,
            "browLift": self.brow_lift,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EmotionProfile":
        """Create from a dictionary with camelCase or snake_case keys.

        Unknown keys (descriptions, UI hints) are ignored.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _CAMEL_KEYS.get(key, key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)


NEUTRAL_EMOTION = EmotionProfile()
