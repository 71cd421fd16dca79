"""Pose Compositor - Per-frame fusion of driver signal and secondary motion.

Given the active driver's (mouth, width) pair, the compositor layers
procedural secondary motion on top: blinking, head turn, gaze, hand
gestures and body sway. Periods are jittered from a seeded stream derived
from (seed, emotion), so the same seed and expression replay the same
motion and a new expression changes it.

All sinusoids take the monotonic timestamp in milliseconds.
"""

from __future__ import annotations

import math

from performer.animation.emotion import NEUTRAL_EMOTION, EmotionProfile
from performer.animation.pose import Pose
from performer.animation.sequence import Sequence, derive_motion_seed, make_sequence
from performer.animation.viseme import clamp
from performer.config.constants import ENGINE


class PoseCompositor:
    """Computes a complete Pose every animation tick.

    Usage:
        compositor = PoseCompositor(emotion, seed=0.42)
        pose = compositor.tick(timestamp_ms, elapsed_s, mouth, width,
                               timeline_duration=timeline.duration)
        if pose is None:
            # text timeline exhausted, end the session
            ...
    """

    def __init__(
        self,
        emotion: EmotionProfile = NEUTRAL_EMOTION,
        seed: float = 0.0,
        completion_buffer_s: float = ENGINE.COMPLETION_BUFFER_S,
    ) -> None:
        self._emotion = emotion
        self._seed = seed
        self._completion_buffer_s = completion_buffer_s
        self._random: Sequence = make_sequence(derive_motion_seed(seed, emotion))

    @property
    def emotion(self) -> EmotionProfile:
        """Active emotion profile."""
        return self._emotion

    @property
    def seed(self) -> float:
        """Performance seed."""
        return self._seed

    def configure(self, emotion: EmotionProfile, seed: float) -> None:
        """Switch expression/seed and re-derive the motion stream.

        A no-op when neither changed, so the stream keeps advancing.
        """
        if emotion == self._emotion and seed == self._seed:
            return
        self._emotion = emotion
        self._seed = seed
        self._random = make_sequence(derive_motion_seed(seed, emotion))

    def is_complete(self, elapsed: float, timeline_duration: float | None) -> bool:
        """Whether a text timeline has run past its trailing buffer."""
        if not timeline_duration:
            return False
        return elapsed > timeline_duration + self._completion_buffer_s

    def tick(
        self,
        timestamp_ms: float,
        elapsed: float,
        mouth: float,
        width: float,
        timeline_duration: float | None = None,
    ) -> Pose | None:
        """Compose the pose for one tick.

        Args:
            timestamp_ms: Monotonic clock reading (ms)
            elapsed: Seconds since session start
            mouth: Driver mouth openness
            width: Driver mouth width
            timeline_duration: Text-mode timeline duration; None in audio mode

        Returns:
            The new pose, or None when the text timeline has completed.
        """
        if self.is_complete(elapsed, timeline_duration):
            return None
        return self.compose(timestamp_ms, mouth, width)

    def compose(self, timestamp_ms: float, mouth: float, width: float) -> Pose:
        """Compose a bounded pose from the driver signal."""
        random = self._random
        emotion = self._emotion
        seed = self._seed
        ts = timestamp_ms

        # Unused draw keeps the stream aligned with recorded performances
        random()
        blink_phase = math.sin(ts / (1300 + random() * 400) + seed)
        blink = clamp(abs(blink_phase) ** 12 * (0.8 + random() * 0.4), 0.0, 1.0)

        head_yaw = (
            math.sin(ts / (2300 + emotion.gaze_intensity * 300) + seed) * 0.25
            + mouth * 0.08 * (emotion.gaze_intensity + 0.2)
        )
        head_pitch = (
            math.sin(ts / (3100 + random() * 500)) * 0.18
            + (emotion.brow_lift * 0.15 - 0.05)
        )
        head_roll = math.sin(ts / (4100 + random() * 500)) * 0.14
        gaze_x = (
            math.sin(ts / (1600 + random() * 600)) * 0.45 * (emotion.gaze_intensity + 0.3)
        )
        gaze_y = (
            math.sin(ts / (2100 + random() * 700) + 0.5)
            * 0.35
            * (emotion.gaze_intensity + 0.2)
        )
        # Distinct phase/frequency per hand
        hand_left = (
            mouth * (0.5 + emotion.hand_amplitude)
            + math.sin(ts / 800 + random() * 2) * 0.2
        )
        hand_right = (
            mouth * (0.45 + emotion.hand_amplitude * 1.1)
            + math.sin(ts / 900 + random() * 2) * 0.25
        )
        body_sway = math.sin(ts / 2500) * 0.25 + mouth * 0.2

        return Pose(
            mouth_open=mouth,
            mouth_width=width,
            blink=blink * (1 - emotion.gaze_intensity * 0.2),
            eyebrow_lift=emotion.brow_lift + mouth * 0.25,
            head_yaw=head_yaw,
            head_pitch=head_pitch,
            head_roll=head_roll,
            gaze_x=gaze_x,
            gaze_y=gaze_y,
            hand_left=hand_left,
            hand_right=hand_right,
            body_sway=body_sway,
        ).clamped()
