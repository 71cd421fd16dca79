"""Pytest configuration and shared fixtures."""

import os
from typing import Generator

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing settings
os.environ.update({
    "PERFORMER_ENVIRONMENT": "development",
    "PERFORMER_TRANSCODE_ENABLED": "false",
    "PERFORMER_LOG_LEVEL": "WARNING",
})


class FakeSurface:
    """Render surface that hands out a labelled video track."""

    def __init__(self) -> None:
        self.captures: list[int] = []

    def capture_stream(self, fps: int):
        from performer.collaborators.recording import VideoTrack

        self.captures.append(fps)
        return VideoTrack(label="canvas", fps=fps)


class FakeRecorder:
    """Recorder that delivers canned chunks on stop."""

    def __init__(self, stream, mime_type, on_chunk, chunks) -> None:
        self.stream = stream
        self.mime_type = mime_type
        self._on_chunk = on_chunk
        self._chunks = chunks
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        for chunk in self._chunks:
            self._on_chunk(chunk)
        self.stopped = True


class RecorderFactorySpy:
    """Recorder factory that keeps every recorder it built."""

    def __init__(self, chunks: list[bytes] | None = None) -> None:
        self.chunks = chunks if chunks is not None else [b"webm-", b"", b"data"]
        self.recorders: list[FakeRecorder] = []

    def __call__(self, stream, mime_type, on_chunk) -> FakeRecorder:
        recorder = FakeRecorder(stream, mime_type, on_chunk, self.chunks)
        self.recorders.append(recorder)
        return recorder


@pytest.fixture
def test_settings():
    """Provide test settings instance."""
    from performer.config.settings import Settings

    return Settings(
        environment="development",
        transcode_enabled=True,
        export_duration_s=8.0,
    )


@pytest.fixture
def scheduler():
    """Provide a manually advanced frame scheduler."""
    from performer.timing.frame_loop import ManualFrameScheduler

    return ManualFrameScheduler(start_ms=1000.0)


@pytest.fixture
def speech():
    """Provide a mock speech backend that completes only on finish()."""
    from performer.collaborators.speech import MockSpeechSynthesizer

    return MockSpeechSynthesizer()


@pytest.fixture
def audio_graph():
    """Provide a private audio graph (bypassing the process-wide one)."""
    from performer.collaborators.audio import AudioGraph

    return AudioGraph()


@pytest.fixture
def surface() -> FakeSurface:
    """Provide a fake render surface."""
    return FakeSurface()


@pytest.fixture
def recorder_factory() -> RecorderFactorySpy:
    """Provide a recorder factory spy."""
    return RecorderFactorySpy()


@pytest.fixture
def sleeps() -> list[float]:
    """Durations requested from the engine's sleep."""
    return []


@pytest.fixture
def engine(test_settings, scheduler, speech, audio_graph, sleeps):
    """Provide an engine wired to manual collaborators."""
    from performer.engine.controller import PerformanceEngine

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    engine = PerformanceEngine(
        speech=speech,
        scheduler=scheduler,
        audio_graph=audio_graph,
        settings=test_settings,
        script="Hey there",
        seed=0.42,
        sleep=fake_sleep,
        engine_id="test-engine",
    )
    yield engine
    engine.shutdown()


@pytest.fixture
def wav_bytes() -> bytes:
    """One second of a 440 Hz tone as WAV."""
    import io

    import numpy as np
    import soundfile as sf

    sample_rate = 8000
    t = np.arange(sample_rate) / sample_rate
    tone = 0.5 * np.sin(2 * np.pi * 440 * t)
    buffer = io.BytesIO()
    sf.write(buffer, tone.astype(np.float32), sample_rate, format="WAV")
    return buffer.getvalue()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Provide FastAPI test client."""
    from performer.main import app

    with TestClient(app) as c:
        yield c
