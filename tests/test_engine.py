"""Tests for PerformanceEngine playback control.

Covers the single-clock guarantee, session lifecycle, driver preconditions,
completion signals and uploaded-track ownership.
"""

import asyncio
import io

import numpy as np
import pytest
import soundfile as sf

from performer.animation.emotion import EmotionProfile
from performer.collaborators.audio import SampleFileAudioSource, get_audio_graph
from performer.collaborators.speech import MockSpeechSynthesizer
from performer.engine.controller import PerformanceEngine
from performer.engine.session import AudioSession, TextSession
from performer.engine.state_machine import PlaybackState
from performer.timing.frame_loop import ManualFrameScheduler


def short_wav(duration_s: float = 0.05, sample_rate: int = 8000) -> bytes:
    t = np.arange(int(duration_s * sample_rate)) / sample_rate
    buffer = io.BytesIO()
    sf.write(buffer, (0.8 * np.sin(2 * np.pi * 220 * t)).astype(np.float32), sample_rate, format="WAV")
    return buffer.getvalue()


def states(engine):
    return [t.new_state for t in engine.history]


class TestTextPreview:
    """Tests for text-mode preview sessions."""

    @pytest.mark.asyncio
    async def test_start_arms_one_clock(self, engine, scheduler, speech):
        """Starting a preview speaks the script and arms exactly one frame."""
        assert await engine.start_preview("text") is True

        assert engine.is_playing
        assert engine.state == PlaybackState.PLAYING
        assert isinstance(engine.session, TextSession)
        assert scheduler.pending_count == 1
        assert speech.spoken[-1].text == "Hey there"

    @pytest.mark.asyncio
    async def test_ticks_publish_poses(self, engine, scheduler):
        """Each tick publishes a bounded pose and re-arms."""
        poses = []
        engine.add_pose_listener(poses.append)
        await engine.start_preview("text")

        scheduler.run_frames(10)

        # Transient reset on start, then one pose per tick
        assert len(poses) == 11
        assert poses[0].mouth_open == 0.12
        assert all(p.is_bounded() for p in poses)
        assert engine.pose is poses[-1]
        assert scheduler.pending_count == 1

    @pytest.mark.asyncio
    async def test_start_while_playing_is_refused(self, engine, scheduler):
        """A second start without force leaves the running session alone."""
        await engine.start_preview("text")
        session = engine.session

        assert await engine.start_preview("text") is False
        assert engine.session is session
        assert scheduler.pending_count == 1

    @pytest.mark.asyncio
    async def test_force_restart_replaces_clock(self, engine, scheduler):
        """Force restart cancels the prior frame before arming a new one."""
        await engine.start_preview("text")
        scheduler.advance()
        old_session = engine.session
        old_request = old_session.frame

        assert await engine.start_preview("text", force_restart=True) is True

        assert old_request.cancelled
        assert scheduler.pending_count == 1
        assert engine.session is not old_session
        assert engine.session.timeline is not old_session.timeline
        assert engine.session.start_ms > old_session.start_ms

    @pytest.mark.asyncio
    async def test_rapid_restarts_keep_single_clock(self, engine, scheduler):
        """Any number of restarts leaves one outstanding frame."""
        for _ in range(5):
            await engine.start_preview("text", force_restart=True)
            scheduler.advance()
        assert scheduler.pending_count == 1

    @pytest.mark.asyncio
    async def test_timeline_completion(self, engine, scheduler):
        """Session completes after the timeline and trailing buffer."""
        await engine.start_preview("text")

        # Two words at neutral emotion: 2.0 s timeline + 0.4 s buffer
        assert engine.session.timeline.duration == pytest.approx(2.0)
        scheduler.run_frames(23, step_ms=100.0)
        assert engine.is_playing

        scheduler.run_frames(3, step_ms=100.0)
        assert not engine.is_playing
        assert engine.state == PlaybackState.IDLE
        assert scheduler.pending_count == 0
        assert states(engine)[-2:] == [PlaybackState.COMPLETED, PlaybackState.IDLE]
        assert engine.history[-1].reason == "timeline_complete"

    @pytest.mark.asyncio
    async def test_speech_end_stops_session(self, engine, scheduler, speech):
        """Speech completion ends the session naturally."""
        await engine.start_preview("text")

        speech.finish()

        assert not engine.is_playing
        assert scheduler.pending_count == 0
        assert engine.history[-1].reason == "speech_ended"
        assert PlaybackState.COMPLETED in states(engine)

    @pytest.mark.asyncio
    async def test_stale_speech_end_ignored(self, engine, speech):
        """A completion signal from a superseded session is ignored."""
        await engine.start_preview("text")
        stale_on_end = speech._on_end

        await engine.start_preview("text", force_restart=True)
        stale_on_end()

        assert engine.is_playing

    @pytest.mark.asyncio
    async def test_empty_script_speaks_default(self, engine, speech, test_settings):
        """A blank script falls back to the default line."""
        engine.set_script("   ")
        await engine.start_preview("text")
        assert speech.spoken[-1].text == test_settings.default_script

    @pytest.mark.asyncio
    async def test_voice_follows_emotion(self, engine, speech):
        """Utterance parameters derive from the emotion."""
        engine.set_emotion(EmotionProfile(brow_lift=1.0, mouth_energy=1.0, hand_amplitude=1.0))
        await engine.start_preview("text")

        utterance = speech.spoken[-1]
        assert utterance.pitch == pytest.approx(1.5)
        assert utterance.rate == pytest.approx(1.2)
        assert utterance.volume == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_speech_unavailable_refuses(self, test_settings, scheduler, audio_graph):
        """Without speech support text mode does not start."""
        engine = PerformanceEngine(
            speech=MockSpeechSynthesizer(available=False),
            scheduler=scheduler,
            audio_graph=audio_graph,
            settings=test_settings,
        )

        assert await engine.start_preview("text") is False
        assert not engine.is_playing
        assert engine.state == PlaybackState.IDLE
        assert engine.history == []
        assert scheduler.pending_count == 0


class TestStopPreview:
    """Tests for stop_preview."""

    @pytest.mark.asyncio
    async def test_stop_cancels_clock(self, engine, scheduler, speech):
        """Stop cancels the frame, quiets speech and resets the mouth."""
        await engine.start_preview("text")
        scheduler.run_frames(3)
        request = engine.session.frame

        engine.stop_preview()

        assert request.cancelled
        assert scheduler.pending_count == 0
        assert not engine.is_playing
        assert not speech.is_speaking
        assert engine.pose.mouth_open == 0.12
        assert engine.pose.hand_left == 0.0
        assert states(engine)[-2:] == [PlaybackState.STOPPED, PlaybackState.IDLE]
        assert scheduler.advance() == 0

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, engine, scheduler):
        """Repeated stops are harmless."""
        await engine.start_preview("text")
        engine.stop_preview()
        transitions = len(engine.history)

        engine.stop_preview()
        engine.stop_preview()

        assert len(engine.history) == transitions
        assert engine.state == PlaybackState.IDLE

    def test_stop_when_idle(self, engine):
        """Stopping an idle engine only resets the pose."""
        engine.stop_preview()
        assert engine.history == []
        assert engine.pose.mouth_open == 0.12

    @pytest.mark.asyncio
    async def test_completion_after_stop_is_ignored(self, engine, speech):
        """A natural completion racing a manual stop does nothing."""
        await engine.start_preview("text")
        on_end = speech._on_end
        engine.stop_preview()
        transitions = len(engine.history)

        on_end()

        assert len(engine.history) == transitions

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, engine, scheduler):
        """A stopped engine can start again."""
        await engine.start_preview("text")
        engine.stop_preview()
        assert await engine.start_preview("text") is True
        assert scheduler.pending_count == 1


class TestRegenerate:
    """Tests for regenerate."""

    @pytest.mark.asyncio
    async def test_regenerate_idle(self, engine):
        """Regenerating while idle only changes the seed."""
        old_seed = engine.seed
        new_seed = await engine.regenerate()

        assert new_seed == engine.seed
        assert new_seed != old_seed
        assert not engine.is_playing

    @pytest.mark.asyncio
    async def test_regenerate_restarts_running_preview(self, engine, scheduler):
        """A running preview restarts with the new seed."""
        await engine.start_preview("text")
        old_session = engine.session

        await engine.regenerate()

        assert engine.is_playing
        assert engine.session is not old_session
        assert scheduler.pending_count == 1


class TestAudioPreview:
    """Tests for audio-mode sessions and uploaded tracks."""

    @pytest.fixture
    def audio_source(self):
        return SampleFileAudioSource()

    @pytest.fixture
    def audio_engine(self, test_settings, scheduler, speech, audio_graph, audio_source):
        engine = PerformanceEngine(
            speech=speech,
            audio_source=audio_source,
            scheduler=scheduler,
            audio_graph=audio_graph,
            settings=test_settings,
            seed=0.1,
        )
        yield engine
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_audio_without_upload_refused(self, audio_engine, scheduler):
        """Audio mode needs a loaded track."""
        assert await audio_engine.start_preview("audio") is False
        assert not audio_engine.is_playing
        assert audio_engine.history == []
        assert scheduler.pending_count == 0
        assert audio_engine.mode == "text"

    @pytest.mark.asyncio
    async def test_audio_session_drives_mouth(
        self, audio_engine, audio_source, scheduler, audio_graph, wav_bytes
    ):
        """A loaded track starts an audio session fed by the analysis tap."""
        assert audio_engine.load_audio(wav_bytes, name="take.wav")
        assert audio_engine.has_audio_loaded

        assert await audio_engine.start_preview("audio") is True
        assert isinstance(audio_engine.session, AudioSession)
        assert audio_graph.state == "running"
        assert audio_engine.session.analyser is audio_graph.analyser_for(audio_source)

        scheduler.run_frames(5)
        assert audio_engine.pose.is_bounded()
        assert scheduler.pending_count == 1

    @pytest.mark.asyncio
    async def test_analysis_tap_created_once(self, audio_engine, audio_graph, wav_bytes):
        """Sessions reuse the same tap."""
        audio_engine.load_audio(wav_bytes)
        await audio_engine.start_preview("audio")
        tap = audio_engine.session.analyser

        await audio_engine.start_preview("audio", force_restart=True)
        assert audio_engine.session.analyser is tap

    @pytest.mark.asyncio
    async def test_media_end_stops_session(self, audio_engine, scheduler):
        """The track's ended signal completes the session."""
        audio_engine.load_audio(short_wav(0.05))
        await audio_engine.start_preview("audio")

        await asyncio.sleep(0.2)

        assert not audio_engine.is_playing
        assert scheduler.pending_count == 0
        assert audio_engine.history[-1].reason == "media_ended"

    @pytest.mark.asyncio
    async def test_switch_to_text_pauses_audio(self, audio_engine, audio_source, speech, wav_bytes):
        """Starting text mode quiets the audio driver."""
        audio_engine.load_audio(wav_bytes)
        await audio_engine.start_preview("audio")
        assert audio_source.is_playing

        await audio_engine.start_preview("text", force_restart=True)

        assert not audio_source.is_playing
        assert isinstance(audio_engine.session, TextSession)
        assert speech.is_speaking

    @pytest.mark.asyncio
    async def test_switch_to_audio_cancels_speech(self, audio_engine, speech, wav_bytes):
        """Starting audio mode cancels in-flight speech."""
        audio_engine.load_audio(wav_bytes)
        await audio_engine.start_preview("text")

        await audio_engine.start_preview("audio", force_restart=True)

        assert not speech.is_speaking
        assert audio_engine.mode == "audio"

    def test_previous_upload_released_once(self, audio_engine, wav_bytes):
        """Replacing an upload releases the previous handle exactly once."""
        audio_engine.load_audio(wav_bytes, name="first.wav")
        first = audio_engine._media
        audio_engine.load_audio(wav_bytes, name="second.wav")
        second = audio_engine._media

        assert first.released
        assert first.release_count == 1
        assert not second.released

        audio_engine.shutdown()
        assert second.release_count == 1

    def test_undecodable_upload_keeps_previous(self, audio_engine, wav_bytes):
        """A corrupt upload is rejected without losing the loaded track."""
        audio_engine.load_audio(wav_bytes)
        loaded = audio_engine._media

        assert audio_engine.load_audio(b"not audio at all") is False
        assert audio_engine._media is loaded
        assert audio_engine.has_audio_loaded

    def test_missing_file_rejected(self, audio_engine, tmp_path):
        """An unreadable path is rejected."""
        assert audio_engine.load_audio(tmp_path / "missing.wav") is False
        assert not audio_engine.has_audio_loaded

    @pytest.mark.asyncio
    async def test_upload_during_audio_session_supersedes(self, audio_engine, wav_bytes):
        """Loading a new track stops the running audio session."""
        audio_engine.load_audio(wav_bytes)
        await audio_engine.start_preview("audio")

        assert audio_engine.load_audio(wav_bytes, name="retake.wav")
        assert not audio_engine.is_playing
        assert audio_engine.history[-1].reason == "superseded"

    @pytest.mark.asyncio
    async def test_shutdown_closes_injected_graph(self, audio_engine, audio_graph, wav_bytes):
        """A graph handed to the engine is closed with it."""
        audio_engine.load_audio(wav_bytes)
        await audio_engine.start_preview("audio")

        audio_engine.shutdown()

        assert audio_graph.state == "closed"
        assert audio_graph.tap_count == 0


class SlowPlaySource(SampleFileAudioSource):
    """Audio source whose play() yields before playback begins."""

    async def play(self) -> None:
        await asyncio.sleep(0)
        await super().play()


class TestAudioStartRace:
    """Tests for stops and restarts landing while the device starts."""

    @pytest.fixture
    def slow_source(self):
        return SlowPlaySource()

    @pytest.fixture
    def slow_engine(self, test_settings, scheduler, speech, audio_graph, slow_source, wav_bytes):
        engine = PerformanceEngine(
            speech=speech,
            audio_source=slow_source,
            scheduler=scheduler,
            audio_graph=audio_graph,
            settings=test_settings,
            seed=0.1,
        )
        engine.load_audio(wav_bytes)
        yield engine
        engine.shutdown()

    @pytest.mark.asyncio
    async def test_stop_while_device_starting(self, slow_engine, slow_source, scheduler):
        """A stop during play() leaves the track paused and the engine idle."""
        start = asyncio.create_task(slow_engine.start_preview("audio"))
        await asyncio.sleep(0)
        assert slow_engine.state == PlaybackState.STARTING

        slow_engine.stop_preview()

        assert await start is False
        assert not slow_source.is_playing
        assert slow_source.position_s == 0.0
        assert not slow_engine.is_playing
        assert slow_engine.state == PlaybackState.IDLE
        assert scheduler.pending_count == 0

    @pytest.mark.asyncio
    async def test_forced_audio_restart_while_device_starting(
        self, slow_engine, slow_source, scheduler
    ):
        """A newer audio start keeps playback; only one clock runs."""
        first = asyncio.create_task(slow_engine.start_preview("audio"))
        await asyncio.sleep(0)

        assert await slow_engine.start_preview("audio", force_restart=True) is True
        assert await first is False

        assert slow_source.is_playing
        assert isinstance(slow_engine.session, AudioSession)
        assert slow_engine.state == PlaybackState.PLAYING
        assert scheduler.pending_count == 1

    @pytest.mark.asyncio
    async def test_text_start_while_device_starting(self, slow_engine, slow_source, scheduler):
        """Switching to text mid-start keeps the track silent."""
        first = asyncio.create_task(slow_engine.start_preview("audio"))
        await asyncio.sleep(0)

        assert await slow_engine.start_preview("text", force_restart=True) is True
        assert await first is False

        assert not slow_source.is_playing
        assert isinstance(slow_engine.session, TextSession)
        assert scheduler.pending_count == 1


class TestSharedAudioGraph:
    """Tests for several engines on the process-wide audio graph."""

    @pytest.fixture(autouse=True)
    def fresh_graph(self):
        get_audio_graph().close()
        yield
        get_audio_graph().close()

    @pytest.fixture
    def make_audio_engine(self, test_settings, wav_bytes):
        engines = []

        def build(source):
            engine = PerformanceEngine(
                speech=MockSpeechSynthesizer(),
                audio_source=source,
                scheduler=ManualFrameScheduler(start_ms=0.0),
                settings=test_settings,
                seed=0.1,
            )
            engine.load_audio(wav_bytes)
            engines.append(engine)
            return engine

        yield build
        for engine in engines:
            engine.shutdown()

    @pytest.mark.asyncio
    async def test_each_engine_taps_its_own_source(self, make_audio_engine):
        """Engines sharing the graph analyse their own tracks."""
        source_a, source_b = SampleFileAudioSource(), SampleFileAudioSource()
        a, b = make_audio_engine(source_a), make_audio_engine(source_b)

        assert await a.start_preview("audio") is True
        assert await b.start_preview("audio") is True

        assert a.session.analyser.source is source_a
        assert b.session.analyser.source is source_b
        assert get_audio_graph().tap_count == 2

    @pytest.mark.asyncio
    async def test_shutdown_leaves_shared_graph_running(self, make_audio_engine):
        """One engine shutting down does not stop the others."""
        source_a, source_b = SampleFileAudioSource(), SampleFileAudioSource()
        a, b = make_audio_engine(source_a), make_audio_engine(source_b)
        await a.start_preview("audio")
        await b.start_preview("audio")
        graph = get_audio_graph()

        a.shutdown()

        assert graph.state == "running"
        assert graph.analyser_for(source_a) is None
        assert b.is_playing

        b.stop_preview()
        assert await b.start_preview("audio") is True
        assert b.session.analyser.source is source_b
        assert get_audio_graph() is graph


class TestPoseListeners:
    """Tests for pose publication."""

    @pytest.mark.asyncio
    async def test_remove_listener(self, engine, scheduler):
        """Removed listeners stop receiving poses."""
        poses = []
        remove = engine.add_pose_listener(poses.append)
        await engine.start_preview("text")
        remove()
        count = len(poses)

        scheduler.run_frames(3)
        assert len(poses) == count

    @pytest.mark.asyncio
    async def test_listener_error_does_not_stop_clock(self, engine, scheduler):
        """A failing listener does not break the loop."""
        def broken(pose):
            raise ValueError("renderer gone")

        engine.add_pose_listener(broken)
        await engine.start_preview("text")
        scheduler.run_frames(3)

        assert engine.is_playing
        assert scheduler.pending_count == 1
