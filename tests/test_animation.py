"""Tests for the seeded sequence, emotion profile and viseme timeline."""

import pytest

from performer.animation.emotion import NEUTRAL_EMOTION, EmotionProfile
from performer.animation.sequence import (
    SeededSequence,
    derive_motion_seed,
    make_sequence,
)
from performer.animation.viseme import (
    IDLE_MOUTH,
    IDLE_WIDTH,
    Timeline,
    VisemeFrame,
    build_viseme_timeline,
    estimate_word_duration,
    sample_viseme,
    split_words,
)
from performer.exceptions import InvalidEmotionError


class TestSeededSequence:
    """Tests for the deterministic sequence."""

    def test_same_seed_same_stream(self):
        """Two streams with one seed yield identical values."""
        a = make_sequence(0.42)
        b = make_sequence(0.42)
        assert [a() for _ in range(50)] == [b() for _ in range(50)]

    def test_values_in_unit_interval(self):
        """Every draw is in [0, 1)."""
        random = make_sequence(123.456)
        for _ in range(1000):
            value = random()
            assert 0.0 <= value < 1.0

    def test_different_seeds_differ(self):
        """Different seeds give different streams."""
        a = make_sequence(0.1)
        b = make_sequence(0.2)
        assert [a() for _ in range(5)] != [b() for _ in range(5)]

    def test_zero_seed_is_valid(self):
        """Seed 0 still produces a stream."""
        random = make_sequence(0.0)
        values = {random() for _ in range(10)}
        assert len(values) > 1

    def test_seed_property(self):
        """Stream remembers its seed."""
        assert SeededSequence(3.5).seed == 3.5

    def test_derive_motion_seed_offsets_by_mouth_energy(self):
        """Motion seed shifts with mouth energy."""
        emotion = EmotionProfile(mouth_energy=0.8)
        assert derive_motion_seed(1.0, emotion) == pytest.approx(81.0)


class TestEmotionProfile:
    """Tests for EmotionProfile validation and conversion."""

    def test_defaults(self):
        """Neutral profile defaults."""
        assert NEUTRAL_EMOTION.mouth_energy == 0.5
        assert NEUTRAL_EMOTION.brow_lift == 0.3
        assert NEUTRAL_EMOTION.id == "neutral"

    @pytest.mark.parametrize("field_name", ["mouth_energy", "hand_amplitude", "gaze_intensity", "brow_lift"])
    def test_out_of_range_rejected(self, field_name):
        """Values outside [0, 1] raise InvalidEmotionError."""
        with pytest.raises(InvalidEmotionError) as exc_info:
            EmotionProfile(**{field_name: 1.5})
        assert exc_info.value.details["field"] == field_name

    def test_non_number_rejected(self):
        """Non-numeric values raise InvalidEmotionError."""
        with pytest.raises(InvalidEmotionError):
            EmotionProfile(mouth_energy="loud")

    def test_bool_rejected(self):
        """Booleans are not intensities."""
        with pytest.raises(InvalidEmotionError):
            EmotionProfile(gaze_intensity=True)

    def test_bounds_inclusive(self):
        """0 and 1 are accepted."""
        profile = EmotionProfile(mouth_energy=0.0, hand_amplitude=1.0)
        assert profile.mouth_energy == 0.0
        assert profile.hand_amplitude == 1.0

    def test_from_dict_accepts_camel_case(self):
        """camelCase keys map onto fields; unknown keys are ignored."""
        profile = EmotionProfile.from_dict({
            "id": "excited",
            "mouthEnergy": 0.9,
            "handAmplitude": 0.8,
            "description": "big",
        })
        assert profile.id == "excited"
        assert profile.mouth_energy == 0.9
        assert profile.hand_amplitude == 0.8

    def test_to_dict_camel_case(self):
        """to_dict produces renderer keys."""
        data = EmotionProfile(brow_lift=0.6).to_dict()
        assert data["browLift"] == 0.6
        assert data["color"] == "#8b9cff"


class TestWordDuration:
    """Tests for per-word duration estimation."""

    def test_neutral_with_still_hands(self):
        """Baseline duration."""
        emotion = EmotionProfile(mouth_energy=0.5, hand_amplitude=0.0)
        assert estimate_word_duration(emotion) == pytest.approx(0.42)

    def test_clamped_low(self):
        """Energetic speech is clamped to the minimum."""
        emotion = EmotionProfile(mouth_energy=1.0, hand_amplitude=1.0)
        assert estimate_word_duration(emotion) == pytest.approx(0.28)

    def test_calm_is_slower(self):
        """Calm speech is slower."""
        emotion = EmotionProfile(mouth_energy=0.0, hand_amplitude=0.0)
        assert estimate_word_duration(emotion) == pytest.approx(0.52)

    def test_split_words_normalizes_whitespace(self):
        """Runs of whitespace separate words."""
        assert split_words("  Hey\t there \n friend ") == ["Hey", "there", "friend"]


class TestBuildVisemeTimeline:
    """Tests for timeline synthesis."""

    def test_two_word_line(self):
        """'Hey there' at neutral energy with still hands."""
        emotion = EmotionProfile(mouth_energy=0.5, hand_amplitude=0.0)
        timeline = build_viseme_timeline("Hey there", emotion, seed=0.42)

        assert timeline.duration == pytest.approx(2.04)
        assert len(timeline.frames) == 122

    def test_deterministic(self):
        """Identical inputs give identical timelines."""
        a = build_viseme_timeline("The stage is ready", NEUTRAL_EMOTION, seed=7.0)
        b = build_viseme_timeline("The stage is ready", NEUTRAL_EMOTION, seed=7.0)
        assert a == b

    def test_seed_changes_jitter(self):
        """A different seed changes the frames."""
        a = build_viseme_timeline("The stage is ready", NEUTRAL_EMOTION, seed=1.0)
        b = build_viseme_timeline("The stage is ready", NEUTRAL_EMOTION, seed=2.0)
        assert a.frames != b.frames

    def test_minimum_duration(self):
        """Short lines still run two seconds."""
        timeline = build_viseme_timeline("Hi", NEUTRAL_EMOTION, seed=0.0)
        assert timeline.duration == pytest.approx(2.0)
        assert len(timeline.frames) == 120

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_empty_text_fallback(self, text):
        """Empty text yields the idle fallback timeline."""
        timeline = build_viseme_timeline(text, NEUTRAL_EMOTION, seed=0.5)

        assert timeline.duration == pytest.approx(2.5)
        assert len(timeline.frames) == 150
        for frame in timeline.frames:
            assert 0.2 <= frame.mouth <= 0.35
            assert 0.3 <= frame.width <= 0.45

    def test_frames_sorted_at_sample_rate(self):
        """Frame k sits at k / sample_rate."""
        timeline = build_viseme_timeline("one two three four", NEUTRAL_EMOTION, seed=0.3)
        for k, frame in enumerate(timeline.frames):
            assert frame.time == pytest.approx(k / 60)

    def test_custom_sample_rate(self):
        """Sample rate controls frame density."""
        timeline = build_viseme_timeline("Hi", NEUTRAL_EMOTION, seed=0.0, sample_rate=30)
        assert len(timeline.frames) == 60

    def test_values_bounded(self):
        """Mouth and width stay inside their clamps at extreme emotion."""
        emotion = EmotionProfile(mouth_energy=1.0, hand_amplitude=1.0, brow_lift=1.0)
        timeline = build_viseme_timeline(
            "Pop bubble mumble fluffy vivid lullaby " * 5, emotion, seed=9.9
        )
        for frame in timeline.frames:
            assert 0.05 <= frame.mouth <= 1.0
            assert 0.05 <= frame.width <= 0.95

    def test_non_empty_for_any_text(self):
        """Every input yields at least one frame."""
        for text in ["", "a", "Hello, the stage is ready."]:
            assert len(build_viseme_timeline(text, NEUTRAL_EMOTION, 0.0)) > 0

    def test_to_dict(self):
        """Serialized timeline carries its frames."""
        data = build_viseme_timeline("Hi", NEUTRAL_EMOTION, seed=0.0).to_dict()
        assert data["frame_count"] == 120
        assert set(data["frames"][0]) == {"time", "mouth", "width"}


class TestSampleViseme:
    """Tests for timeline sampling."""

    @pytest.fixture
    def frames(self):
        return (
            VisemeFrame(time=0.0, mouth=0.2, width=0.4),
            VisemeFrame(time=1.0, mouth=0.6, width=0.8),
            VisemeFrame(time=2.0, mouth=0.4, width=0.5),
        )

    def test_empty_returns_idle(self):
        """No frames gives the idle mouth."""
        assert sample_viseme((), 1.0) == (IDLE_MOUTH, IDLE_WIDTH)

    def test_interpolates_between_frames(self, frames):
        """Midpoint is the linear blend."""
        mouth, width = sample_viseme(frames, 0.5)
        assert mouth == pytest.approx(0.4)
        assert width == pytest.approx(0.6)

    def test_exact_frame_time(self, frames):
        """Sampling on a frame time returns that frame."""
        mouth, width = sample_viseme(frames, 1.0)
        assert mouth == pytest.approx(0.6)
        assert width == pytest.approx(0.8)

    def test_holds_last_frame(self, frames):
        """Past the end the last frame is held."""
        assert sample_viseme(frames, 10.0) == (0.4, 0.5)

    def test_before_start_returns_first(self, frames):
        """Negative elapsed returns the first frame."""
        assert sample_viseme(frames, -0.5) == (0.2, 0.4)

    def test_single_frame(self):
        """A single frame is held everywhere."""
        frames = [VisemeFrame(time=0.0, mouth=0.3, width=0.3)]
        assert sample_viseme(frames, 0.0) == (0.3, 0.3)
        assert sample_viseme(frames, 5.0) == (0.3, 0.3)

    def test_does_not_mutate_frames(self, frames):
        """Sampling leaves the timeline unchanged."""
        timeline = Timeline(frames=frames, duration=2.0)
        before = timeline.to_dict()
        for elapsed in (0.1, 0.9, 1.5, 3.0):
            sample_viseme(timeline.frames, elapsed)
        assert timeline.to_dict() == before
