"""Performance API Routes - Timeline synthesis and preview control.

Provides REST endpoints for:
- Synthesizing a viseme timeline for a script
- Starting/stopping the shared engine's preview
- Uploading the audio-mode track
- Regenerating the performance seed
- Reading engine state
- Streaming poses over WebSocket
"""

from typing import Any, Literal

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field, field_validator

from performer.animation.emotion import NEUTRAL_EMOTION, EmotionProfile
from performer.animation.viseme import build_viseme_timeline
from performer.api.websocket.pose import PoseBroadcaster
from performer.collaborators.speech import MockSpeechSynthesizer
from performer.collaborators.transcode import FfmpegTranscoder
from performer.config.settings import get_settings
from performer.engine.controller import PerformanceEngine
from performer.exceptions import InvalidEmotionError

router = APIRouter(tags=["performance"])

# Global engine (initialized on startup)
_engine: PerformanceEngine | None = None
_broadcaster: PoseBroadcaster | None = None


def get_broadcaster() -> PoseBroadcaster:
    """Get global pose broadcaster."""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = PoseBroadcaster()
    return _broadcaster


def get_engine() -> PerformanceEngine:
    """Get global engine.

    The service has no voice of its own: text sessions run silently and
    end when their timeline does.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = PerformanceEngine(
            speech=MockSpeechSynthesizer(),
            transcoder=FfmpegTranscoder(settings.ffmpeg_path, settings.transcode_timeout_s),
            settings=settings,
            script=settings.default_script,
        )
        _engine.add_pose_listener(get_broadcaster().publish)
    return _engine


def reset_engine() -> None:
    """Shut down and drop the global engine."""
    global _engine
    if _engine is not None:
        _engine.shutdown()
        _engine = None


def _check_script_length(value: str | None) -> str | None:
    """Reject scripts too long to synthesize without stalling the loop."""
    limit = get_settings().max_script_chars
    if value is not None and len(value) > limit:
        raise ValueError(f"script longer than {limit} characters")
    return value


# Request/Response models
class EmotionModel(BaseModel):
    """Emotion parameters."""

    mouth_energy: float = Field(NEUTRAL_EMOTION.mouth_energy, ge=0.0, le=1.0)
    hand_amplitude: float = Field(NEUTRAL_EMOTION.hand_amplitude, ge=0.0, le=1.0)
    gaze_intensity: float = Field(NEUTRAL_EMOTION.gaze_intensity, ge=0.0, le=1.0)
    brow_lift: float = Field(NEUTRAL_EMOTION.brow_lift, ge=0.0, le=1.0)
    color: str = NEUTRAL_EMOTION.color

    def to_profile(self) -> EmotionProfile:
        """Convert to the engine's emotion profile."""
        try:
            return EmotionProfile(**self.model_dump())
        except InvalidEmotionError as e:
            raise HTTPException(status_code=422, detail=e.to_dict())


class TimelineRequest(BaseModel):
    """Request to synthesize a timeline."""

    text: str = Field("", description="Script to speak")
    emotion: EmotionModel = Field(default_factory=EmotionModel)
    seed: float = Field(0.0, description="Jitter seed")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return _check_script_length(v)


class TimelineResponse(BaseModel):
    """Synthesized timeline."""

    duration: float
    frame_count: int
    frames: list[dict[str, float]]


class StartPreviewRequest(BaseModel):
    """Request to start the preview."""

    mode: Literal["text", "audio"] = "text"
    force_restart: bool = False
    script: str | None = None
    emotion: EmotionModel | None = None

    @field_validator("script")
    @classmethod
    def validate_script(cls, v: str | None) -> str | None:
        return _check_script_length(v)


class EngineStateResponse(BaseModel):
    """Engine observables."""

    state: str
    is_playing: bool
    is_exporting: bool
    has_audio_loaded: bool
    speech_supported: bool
    mode: str
    seed: float
    pose: dict[str, float]


def _state_response(engine: PerformanceEngine) -> EngineStateResponse:
    return EngineStateResponse(
        state=engine.state.value,
        is_playing=engine.is_playing,
        is_exporting=engine.is_exporting,
        has_audio_loaded=engine.has_audio_loaded,
        speech_supported=engine.speech_supported,
        mode=engine.mode,
        seed=engine.seed,
        pose=engine.pose.to_dict(),
    )


@router.post("/timeline", response_model=TimelineResponse)
async def synthesize_timeline(request: TimelineRequest) -> dict[str, Any]:
    """Synthesize a viseme timeline without playing it."""
    timeline = await run_in_threadpool(
        build_viseme_timeline, request.text, request.emotion.to_profile(), request.seed
    )
    return timeline.to_dict()


@router.get("/engine", response_model=EngineStateResponse)
async def engine_state() -> EngineStateResponse:
    """Read engine observables."""
    return _state_response(get_engine())


@router.post("/engine/start", response_model=EngineStateResponse)
async def start_preview(request: StartPreviewRequest) -> EngineStateResponse:
    """Start (or force-restart) the preview.

    An unavailable driver leaves the engine unchanged; check is_playing.
    """
    engine = get_engine()
    if request.script is not None:
        engine.set_script(request.script)
    if request.emotion is not None:
        engine.set_emotion(request.emotion.to_profile())
    await engine.start_preview(request.mode, force_restart=request.force_restart)
    return _state_response(engine)


@router.post("/engine/stop", response_model=EngineStateResponse)
async def stop_preview() -> EngineStateResponse:
    """Stop the preview."""
    engine = get_engine()
    engine.stop_preview()
    return _state_response(engine)


@router.post("/engine/audio", response_model=EngineStateResponse)
async def upload_audio(request: Request, name: str = "upload") -> EngineStateResponse:
    """Load the request body as the audio-mode track."""
    engine = get_engine()
    data = await request.body()
    if not data or not engine.load_audio(data, name=name):
        raise HTTPException(status_code=400, detail="Unable to decode audio")
    return _state_response(engine)


@router.post("/engine/regenerate", response_model=EngineStateResponse)
async def regenerate() -> EngineStateResponse:
    """Draw a fresh seed, restarting a running preview with it."""
    engine = get_engine()
    await engine.regenerate()
    return _state_response(engine)


@router.websocket("/ws/pose")
async def pose_stream(websocket: WebSocket) -> None:
    """Stream published poses to a rendering client."""
    get_engine()
    broadcaster = get_broadcaster()
    client = await broadcaster.connect(websocket)
    try:
        while True:
            # Clients only listen; reading detects the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(client)
