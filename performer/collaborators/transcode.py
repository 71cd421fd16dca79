"""Transcoding - Re-encode captured clips for download.

Captured clips come out of the recorder as WebM; downloads are MP4. The
transcoder may fail (missing ffmpeg, bad input, timeout); callers fall
back to the raw clip.
"""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Protocol

from performer.collaborators.recording import Clip
from performer.config.constants import ENGINE
from performer.exceptions import TranscodeError
from performer.observability.logging import get_logger

logger = get_logger(__name__)


class Transcoder(Protocol):
    """Protocol for clip re-encoders."""

    async def transcode(self, clip: Clip) -> Clip:
        """Return the re-encoded clip; raise TranscodeError on failure."""
        ...


class FfmpegTranscoder:
    """WebM → MP4 (H.264, yuv420p) via the ffmpeg CLI.

    Usage:
        transcoder = FfmpegTranscoder()
        mp4 = await transcoder.transcode(webm_clip)
    """

    OUTPUT_MIME = "video/mp4"

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout_s: float = ENGINE.TRANSCODE_TIMEOUT_S,
    ) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._timeout_s = timeout_s

    @property
    def is_available(self) -> bool:
        """Whether the ffmpeg executable can be found."""
        return shutil.which(self._ffmpeg_path) is not None

    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        """ffmpeg argument vector."""
        return [
            self._ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-c:v", "libx264",
            "-preset", "veryfast",
            "-pix_fmt", "yuv420p",
            str(output_path),
        ]

    async def transcode(self, clip: Clip) -> Clip:
        """Re-encode clip to MP4."""
        if not clip.data:
            raise TranscodeError("empty clip")
        if not self.is_available:
            raise TranscodeError(f"{self._ffmpeg_path} not found")

        with tempfile.TemporaryDirectory(prefix="performer-") as workdir:
            input_path = Path(workdir) / f"input.{clip.extension}"
            output_path = Path(workdir) / "output.mp4"
            input_path.write_bytes(clip.data)

            proc = await asyncio.create_subprocess_exec(
                *self.build_command(input_path, output_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await asyncio.wait_for(proc.communicate(), self._timeout_s)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
                raise TranscodeError(f"timed out after {self._timeout_s}s")

            if proc.returncode != 0:
                raise TranscodeError(
                    stderr.decode(errors="replace")[-500:] or "ffmpeg failed",
                    returncode=proc.returncode,
                )
            if not output_path.exists():
                raise TranscodeError("ffmpeg produced no output")

            data = output_path.read_bytes()

        logger.debug("transcode_complete", input_bytes=clip.size, output_bytes=len(data))
        return Clip(data=data, mime_type=self.OUTPUT_MIME)
