"""Pose - Twelve-channel instantaneous face/body state.

The pose is the only engine state a renderer sees. It is recomputed
wholesale every tick and published as a new value; consumers only care
about the most recent one.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace

from performer.animation.viseme import clamp

# Declared range per channel
CHANNEL_RANGES: dict[str, tuple[float, float]] = {
    "mouth_open": (0.0, 1.0),
    "mouth_width": (0.0, 1.0),
    "blink": (0.0, 1.0),
    "eyebrow_lift": (0.0, 1.0),
    "head_yaw": (-1.0, 1.0),
    "head_pitch": (-1.0, 1.0),
    "head_roll": (-1.0, 1.0),
    "gaze_x": (-1.0, 1.0),
    "gaze_y": (-1.0, 1.0),
    "hand_left": (-1.0, 1.0),
    "hand_right": (-1.0, 1.0),
    "body_sway": (-1.0, 1.0),
}

_CAMEL = {
    "mouth_open": "mouthOpen",
    "mouth_width": "mouthWidth",
    "blink": "blink",
    "eyebrow_lift": "eyebrowLift",
    "head_yaw": "headYaw",
    "head_pitch": "headPitch",
    "head_roll": "headRoll",
    "gaze_x": "gazeX",
    "gaze_y": "gazeY",
    "hand_left": "handLeft",
    "hand_right": "handRight",
    "body_sway": "bodySway",
}


@dataclass
class Pose:
    """Face and body channels consumed by the renderer."""

    mouth_open: float = 0.1
    mouth_width: float = 0.1
    blink: float = 0.0
    eyebrow_lift: float = 0.0
    head_yaw: float = 0.0
    head_pitch: float = 0.0
    head_roll: float = 0.0
    gaze_x: float = 0.0
    gaze_y: float = 0.0
    hand_left: float = 0.0
    hand_right: float = 0.0
    body_sway: float = 0.0

    def clamped(self) -> "Pose":
        """Copy with every channel inside its declared range."""
        values = {
            name: clamp(getattr(self, name), lo, hi)
            for name, (lo, hi) in CHANNEL_RANGES.items()
        }
        return Pose(**values)

    def is_bounded(self) -> bool:
        """Whether every channel is inside its declared range."""
        return all(
            lo <= getattr(self, name) <= hi
            for name, (lo, hi) in CHANNEL_RANGES.items()
        )

    def with_transient_reset(self) -> "Pose":
        """Idle mouth and neutral hands/body, keeping head, gaze and brows."""
        return replace(
            self,
            mouth_open=0.12,
            mouth_width=0.2,
            hand_left=0.0,
            hand_right=0.0,
            body_sway=0.0,
        )

    def to_dict(self) -> dict[str, float]:
        """Convert to camelCase dictionary for renderers."""
        return {_CAMEL[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict[str, float]) -> "Pose":
        """Create from camelCase or snake_case dictionary."""
        reverse = {v: k for k, v in _CAMEL.items()}
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = reverse.get(key, key)
            if name in known:
                kwargs[name] = float(value)
        return cls(**kwargs)


INITIAL_POSE = Pose()
