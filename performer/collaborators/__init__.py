"""Collaborator interfaces - Speech, audio, recording and transcoding.

Each external subsystem is a Protocol plus a headless implementation
usable in tests and offline runs.
"""

from performer.collaborators.audio import (
    AnalyserTap,
    AudioGraph,
    AudioSource,
    AudioTrack,
    MediaHandle,
    SampleFileAudioSource,
    get_audio_graph,
)
from performer.collaborators.recording import (
    CaptureStream,
    Clip,
    ClipAssembler,
    MediaRecorder,
    PoseListener,
    RecorderFactory,
    RenderSurface,
    VideoTrack,
)
from performer.collaborators.speech import (
    MockSpeechSynthesizer,
    SpeechSynthesizer,
    Utterance,
    voice_for_emotion,
)
from performer.collaborators.transcode import FfmpegTranscoder, Transcoder

__all__ = [
    # Audio
    "AnalyserTap",
    "AudioGraph",
    "AudioSource",
    "AudioTrack",
    "MediaHandle",
    "SampleFileAudioSource",
    "get_audio_graph",
    # Recording
    "CaptureStream",
    "Clip",
    "ClipAssembler",
    "MediaRecorder",
    "PoseListener",
    "RecorderFactory",
    "RenderSurface",
    "VideoTrack",
    # Speech
    "MockSpeechSynthesizer",
    "SpeechSynthesizer",
    "Utterance",
    "voice_for_emotion",
    # Transcode
    "FfmpegTranscoder",
    "Transcoder",
]
