"""Performance Engine - Playback and export controller.

Owns the animation clock, the active session and the published pose, and
mediates the speech, audio, recording and transcoding collaborators.

Invariants:
- At most one session and at most one outstanding frame request. Every
  start cancels the previous request before arming a new one.
- Every ending (stop, speech end, media end, timeline end, export window)
  goes through _shutdown_playback, which is idempotent, so a natural
  completion racing a manual stop is harmless.
- Completion callbacks are bound to the session that armed them and are
  ignored once that session has been superseded.
- Unavailable drivers (no speech support, no audio loaded) refuse the
  start and leave state unchanged; callers re-check the flags.
"""

from __future__ import annotations

import asyncio
import functools
import random
import time
import uuid
from pathlib import Path
from typing import Awaitable, Callable

from performer.animation.analyzer import AudioEnergyAnalyzer
from performer.animation.compositor import PoseCompositor
from performer.animation.emotion import NEUTRAL_EMOTION, EmotionProfile
from performer.animation.pose import INITIAL_POSE, Pose
from performer.animation.viseme import build_viseme_timeline, sample_viseme
from performer.collaborators.audio import (
    AudioGraph,
    AudioSource,
    MediaHandle,
    SampleFileAudioSource,
    get_audio_graph,
)
from performer.collaborators.recording import (
    CaptureStream,
    Clip,
    ClipAssembler,
    PoseListener,
    RecorderFactory,
    RenderSurface,
)
from performer.collaborators.speech import SpeechSynthesizer, voice_for_emotion
from performer.collaborators.transcode import Transcoder
from performer.config.settings import Settings, get_settings
from performer.engine.session import (
    ActiveSession,
    AudioSession,
    ExportSession,
    StopReason,
    TextSession,
    VoiceMode,
    drive_of,
)
from performer.engine.state_machine import (
    PlaybackState,
    PlaybackStateMachine,
    StateTransition,
)
from performer.exceptions import CaptureError, PerformerError, PlaybackError
from performer.observability import metrics
from performer.observability.logging import ExportLogger, PlaybackLogger, get_logger
from performer.timing.frame_loop import FrameScheduler, Scheduler

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PerformanceEngine:
    """Drives a performer's pose from text or uploaded audio.

    Usage:
        engine = PerformanceEngine(speech=tts, audio_source=SampleFileAudioSource())
        engine.add_pose_listener(renderer.apply)
        engine.set_script("Hey there")

        await engine.start_preview("text")
        ...
        engine.stop_preview()

        engine.register_surface(renderer.surface)
        clip = await engine.export_clip()
    """

    def __init__(
        self,
        speech: SpeechSynthesizer,
        audio_source: AudioSource | None = None,
        *,
        scheduler: Scheduler | None = None,
        audio_graph: AudioGraph | None = None,
        recorder_factory: RecorderFactory | None = None,
        transcoder: Transcoder | None = None,
        settings: Settings | None = None,
        emotion: EmotionProfile = NEUTRAL_EMOTION,
        script: str = "",
        seed: float | None = None,
        sleep: Sleep = asyncio.sleep,
        engine_id: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._engine_id = engine_id or uuid.uuid4().hex[:12]
        self._speech = speech
        self._audio = audio_source or SampleFileAudioSource()
        self._scheduler = scheduler or FrameScheduler(fps=self._settings.frame_rate)
        self._graph = audio_graph
        self._owns_graph = audio_graph is not None
        self._recorder_factory = recorder_factory
        self._transcoder = transcoder
        self._sleep = sleep

        self._emotion = emotion
        self._script = script
        self._seed = random.random() if seed is None else seed
        self._mode: VoiceMode = "text"

        self._compositor = PoseCompositor(
            emotion, self._seed, completion_buffer_s=self._settings.completion_buffer_s
        )
        self._analyzer = AudioEnergyAnalyzer()

        self._session: ActiveSession | None = None
        self._pending: AudioSession | None = None
        self._pose: Pose = INITIAL_POSE
        self._pose_listeners: list[PoseListener] = []
        self._media: MediaHandle | None = None
        self._surface: RenderSurface | None = None
        self._exporting = False
        self._export_released: asyncio.Event | None = None

        self._fsm = PlaybackStateMachine(clock=self._scheduler.now_ms)
        self._log = PlaybackLogger(self._engine_id)
        self._export_log = ExportLogger(self._engine_id)
        self._fsm.on_state_change(self._log_transition)

    # ------------------------------------------------------------------
    # Observables
    # ------------------------------------------------------------------

    @property
    def engine_id(self) -> str:
        """Engine identifier used in logs."""
        return self._engine_id

    @property
    def pose(self) -> Pose:
        """Most recently published pose."""
        return self._pose

    @property
    def is_playing(self) -> bool:
        """Whether a session is running."""
        return self._session is not None

    @property
    def is_exporting(self) -> bool:
        """Whether an export is recording."""
        return self._exporting

    @property
    def has_audio_loaded(self) -> bool:
        """Whether an uploaded track is ready."""
        return self._media is not None and self._audio.is_loaded

    @property
    def speech_supported(self) -> bool:
        """Whether text mode can run."""
        return self._speech.is_available

    @property
    def state(self) -> PlaybackState:
        """Playback state."""
        return self._fsm.state

    @property
    def history(self) -> list[StateTransition]:
        """Playback state transitions."""
        return self._fsm.history

    @property
    def session(self) -> ActiveSession | None:
        """Active session, if any."""
        return self._session

    @property
    def mode(self) -> VoiceMode:
        """Mode used when start_preview is called without one."""
        return self._mode

    @property
    def seed(self) -> float:
        """Performance seed."""
        return self._seed

    @property
    def emotion(self) -> EmotionProfile:
        """Active emotion profile."""
        return self._emotion

    @property
    def script(self) -> str:
        """Script for text mode."""
        return self._script

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def set_emotion(self, emotion: EmotionProfile) -> None:
        """Change expression; takes effect on the next tick."""
        self._emotion = emotion
        self._compositor.configure(emotion, self._seed)

    def set_script(self, script: str) -> None:
        """Change the text-mode script; takes effect on the next start."""
        self._script = script

    def set_seed(self, seed: float) -> None:
        """Change the performance seed."""
        self._seed = seed
        self._compositor.configure(self._emotion, seed)

    def set_mode(self, mode: VoiceMode) -> None:
        """Select the default driver."""
        self._mode = mode

    def register_surface(self, surface: RenderSurface | None) -> None:
        """Register the renderer's capturable surface."""
        self._surface = surface

    def add_pose_listener(self, listener: PoseListener) -> Callable[[], None]:
        """Subscribe to published poses.

        Returns:
            Function that removes the listener
        """
        self._pose_listeners.append(listener)

        def remove() -> None:
            if listener in self._pose_listeners:
                self._pose_listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    async def start_preview(
        self,
        mode: VoiceMode | None = None,
        force_restart: bool = False,
    ) -> bool:
        """Start a preview session.

        Args:
            mode: "text" or "audio"; defaults to the current mode
            force_restart: Supersede a running session

        Returns:
            True if a new session started
        """
        if self._exporting:
            return False
        return await self._start(mode or self._mode, force_restart, from_export=False)

    def stop_preview(self) -> None:
        """Stop playback and return the pose to idle. Safe to call repeatedly."""
        self._shutdown_playback(StopReason.USER_STOP)
        self._publish(self._pose.with_transient_reset())

    async def regenerate(self) -> float:
        """Draw a fresh seed; restart the running session with it.

        Returns:
            The new seed
        """
        self.set_seed(random.random())
        if self.is_playing and not self._exporting and self._driver_ready(self._mode):
            await self._start(self._mode, force_restart=True, from_export=False)
        return self._seed

    def load_audio(self, source: str | Path | bytes, name: str | None = None) -> bool:
        """Load an uploaded track for audio mode.

        The previous upload is released once the new one decodes. A track
        that cannot be read or decoded is rejected and the previous one
        stays loaded.

        Returns:
            True if the track was loaded
        """
        try:
            media = MediaHandle.from_source(source, name=name)
        except OSError as e:
            logger.warning("audio_read_failed", engine_id=self._engine_id, error=str(e))
            return False

        if self._session is not None and self._session.mode == "audio":
            self._shutdown_playback(StopReason.SUPERSEDED)

        try:
            self._audio.load(media)
        except PlaybackError as e:
            media.release()
            logger.warning("audio_decode_failed", engine_id=self._engine_id, **e.details)
            return False

        previous, self._media = self._media, media
        if previous is not None:
            previous.release()
        self._log.audio_loaded(media.name, self._audio.duration_s)
        return True

    async def export_clip(self) -> Clip | None:
        """Record a forced session for the fixed capture window.

        Returns:
            The transcoded clip, the raw clip if transcoding is unavailable
            or fails, or None if no surface/recorder is registered or an
            export is already running.
        """
        if self._exporting:
            metrics.record_export("busy")
            return None
        if self._surface is None or self._recorder_factory is None:
            metrics.record_export("no_surface")
            return None

        settings = self._settings
        started = time.perf_counter()
        stream = CaptureStream(video=self._surface.capture_stream(settings.capture_fps))
        if self._mode == "audio":
            try:
                stream.add_audio_track(self._audio.capture_track())
            except CaptureError as e:
                self._export_log.audio_track_unavailable(e.message)

        assembler = ClipAssembler(mime_type=settings.capture_mime_type)
        recorder = self._recorder_factory(stream, settings.capture_mime_type, assembler.push)

        self._exporting = True
        self._export_released = asyncio.Event()
        self._export_log.export_started(self._mode, settings.export_duration_ms)
        try:
            recorder.start()
            await self._start(self._mode, force_restart=True, from_export=True)
            # Fixed window regardless of when the drive finishes
            await self._sleep(settings.export_duration_s)
        finally:
            try:
                await recorder.stop()
            finally:
                self._shutdown_playback(StopReason.EXPORT_WINDOW)
                await self._export_released.wait()
                self._export_released = None
                self._exporting = False

        raw = assembler.clip()
        self._export_log.export_captured(
            len(assembler.chunks), raw.size, (time.perf_counter() - started) * 1000
        )

        clip, transcoded = await self._transcode(raw)
        metrics.record_export(
            "transcoded" if transcoded else "raw", time.perf_counter() - started
        )
        self._export_log.export_completed(clip.mime_type, clip.size, transcoded)
        return clip

    def shutdown(self) -> None:
        """Stop playback and release media and the analysis tap.

        A graph passed in at construction is closed; the process-wide graph
        is shared with other engines and only loses this engine's tap.
        """
        self._shutdown_playback(StopReason.SHUTDOWN)
        if self._media is not None:
            self._media.release()
            self._media = None
        self._audio.close()
        if self._graph is not None:
            self._graph.release_analyser(self._audio)
            if self._owns_graph:
                self._graph.close()
            else:
                self._graph = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _audio_graph(self) -> AudioGraph:
        if not self._owns_graph and (self._graph is None or self._graph.state == "closed"):
            self._graph = get_audio_graph()
        return self._graph

    def _driver_ready(self, mode: VoiceMode) -> bool:
        if mode == "audio":
            return self.has_audio_loaded
        return self.speech_supported

    async def _start(self, mode: VoiceMode, force_restart: bool, from_export: bool) -> bool:
        starting = self._fsm.state is PlaybackState.STARTING
        if (self._session is not None or starting) and not force_restart:
            return False

        analyser = None
        if mode == "audio":
            analyser = self._audio_graph().ensure_analyser(self._audio)
            if analyser is None or not self.has_audio_loaded:
                self._refuse(mode, "audio_not_loaded")
                return False
        elif not self.speech_supported:
            self._refuse(mode, "speech_unavailable")
            return False

        self._mode = mode
        if starting:
            # Abort the start still waiting on its device
            self._shutdown_playback(StopReason.SUPERSEDED)
        else:
            self._end_session(StopReason.SUPERSEDED)
        self._fsm.transition_to(PlaybackState.STARTING, "export" if from_export else "preview")
        if not from_export:
            self._publish(self._pose.with_transient_reset())

        start_ms = self._scheduler.now_ms()
        if mode == "audio":
            if self._speech.is_available:
                self._speech.cancel()
            session: ActiveSession = AudioSession(start_ms=start_ms, analyser=analyser)
            self._pending = session
            try:
                if not await self._begin_audio(session):
                    return False
            finally:
                if self._pending is session:
                    self._pending = None
        else:
            if self._audio.is_loaded:
                self._audio.pause()
            session = self._begin_text(start_ms)

        if from_export:
            session = ExportSession(inner=session)
        self._session = session
        session.frame = self._scheduler.request_frame(functools.partial(self._tick, session))
        self._fsm.transition_to(
            PlaybackState.EXPORTING if from_export else PlaybackState.PLAYING,
            "clock_armed",
        )
        metrics.record_session_start(mode)
        self._log.session_started(mode, self._seed, exporting=from_export)
        return True

    def _begin_text(self, start_ms: float) -> TextSession:
        self._speech.cancel()
        text = self._script.strip() or self._settings.default_script
        timeline = build_viseme_timeline(
            text, self._emotion, self._seed, sample_rate=self._settings.viseme_sample_rate
        )
        session = TextSession(start_ms=start_ms, timeline=timeline, text=text)
        utterance = voice_for_emotion(text, self._emotion)
        self._speech.speak(
            utterance,
            on_end=functools.partial(self._on_driver_ended, session, StopReason.SPEECH_ENDED),
        )
        return session

    async def _begin_audio(self, session: AudioSession) -> bool:
        graph = self._audio_graph()
        try:
            if graph.state == "suspended":
                await graph.resume()
            self._audio.pause()
            self._audio.seek(0.0)
            self._audio.on_ended(
                functools.partial(self._on_driver_ended, session, StopReason.MEDIA_ENDED)
            )
            await self._audio.play()
        except PerformerError as e:
            logger.warning("audio_start_failed", engine_id=self._engine_id, error=str(e))
            self._fsm.transition_to(PlaybackState.STOPPED, StopReason.START_FAILED.value)
            self._fsm.transition_to(PlaybackState.IDLE, StopReason.START_FAILED.value)
            return False

        # A stop or a newer start may have landed while awaiting the device
        if self._pending is not session:
            if not self._audio_claimed():
                self._audio.pause()
                self._audio.seek(0.0)
            return False
        return True

    def _audio_claimed(self) -> bool:
        """Whether a newer start or a running audio session owns playback."""
        if self._pending is not None:
            return True
        return self._session is not None and isinstance(drive_of(self._session), AudioSession)

    def _refuse(self, mode: VoiceMode, reason: str) -> None:
        metrics.record_session_refused(mode)
        self._log.session_refused(mode, reason)

    def _tick(self, session: ActiveSession, timestamp_ms: float) -> None:
        """One animation frame; re-arms itself until cancelled or complete."""
        if session is not self._session:
            return
        session.frame = None
        started = time.perf_counter()

        elapsed = (timestamp_ms - session.start_ms) / 1000.0
        drive = drive_of(session)
        if isinstance(drive, AudioSession):
            reading = self._analyzer.analyze(drive.analyser.read_time_domain(), self._emotion)
            mouth, width = reading.mouth, reading.width
        else:
            mouth, width = sample_viseme(drive.timeline.frames, elapsed)

        pose = self._compositor.tick(
            timestamp_ms, elapsed, mouth, width, timeline_duration=drive.timeline_duration
        )
        if pose is None:
            self._shutdown_playback(StopReason.TIMELINE_COMPLETE)
            return

        self._publish(pose)
        if session is self._session:
            session.frame = self._scheduler.request_frame(functools.partial(self._tick, session))
        metrics.record_tick(time.perf_counter() - started)

    def _on_driver_ended(self, session: ActiveSession, reason: StopReason) -> None:
        if self._session is None or drive_of(self._session) is not session:
            return
        self._shutdown_playback(reason)

    def _end_session(self, reason: StopReason) -> None:
        """Cancel the clock and drop the session without touching drivers."""
        session, self._session = self._session, None
        if session is None:
            return
        self._scheduler.cancel_frame(session.frame)
        session.frame = None
        duration_s = (self._scheduler.now_ms() - session.start_ms) / 1000.0
        metrics.record_session_end(reason.value)
        self._log.session_ended(session.mode, reason.value, duration_s)

    def _shutdown_playback(self, reason: StopReason) -> None:
        """End the session and quiet every driver. Idempotent."""
        active = self._session is not None or self._fsm.state is PlaybackState.STARTING
        self._pending = None
        self._end_session(reason)

        if self._speech.is_available:
            self._speech.cancel()
        if self._audio.is_loaded:
            self._audio.pause()
            self._audio.seek(0.0)

        if active and self._fsm.is_active:
            ending = PlaybackState.COMPLETED if reason.is_natural else PlaybackState.STOPPED
            if not self._fsm.can_transition(ending):
                ending = PlaybackState.STOPPED
            self._fsm.transition_to(ending, reason.value)
            self._fsm.transition_to(PlaybackState.IDLE, reason.value)

        if self._export_released is not None:
            self._export_released.set()

    async def _transcode(self, raw: Clip) -> tuple[Clip, bool]:
        if self._transcoder is None or not self._settings.transcode_enabled:
            return raw, False
        try:
            return await self._transcoder.transcode(raw), True
        except Exception as e:
            # Any transcoder failure falls back to the raw clip
            metrics.record_transcode_failure()
            self._export_log.transcode_failed(str(e))
            return raw, False

    def _publish(self, pose: Pose) -> None:
        self._pose = pose
        for listener in list(self._pose_listeners):
            try:
                listener(pose)
            except Exception as e:
                logger.warning("pose_listener_error", engine_id=self._engine_id, error=str(e))

    def _log_transition(self, transition: StateTransition) -> None:
        self._log.state_change(
            transition.old_state.value, transition.new_state.value, transition.reason
        )
