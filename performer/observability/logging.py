"""Structured Logging - JSON logs with correlation.

Provides structured logging for:
- Playback sessions (start, refusal, end)
- Export runs (capture, transcode, fallback)
- Audio media lifecycle

All engine logs include engine_id for correlation.
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON; else human-readable
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Bound structlog logger
    """
    return structlog.get_logger(name)


# -----------------------------------------------------------------------------
# Event-specific logging functions
# -----------------------------------------------------------------------------


class PlaybackLogger:
    """Logger for playback session events."""

    def __init__(self, engine_id: str) -> None:
        self._engine_id = engine_id
        self._log = get_logger("playback").bind(engine_id=engine_id)

    def session_started(self, mode: str, seed: float, **metadata: Any) -> None:
        """Log session start."""
        self._log.info(
            "session_started",
            event_type="playback.started",
            mode=mode,
            seed=seed,
            **metadata,
        )

    def session_refused(self, mode: str, reason: str) -> None:
        """Log a start refused by a precondition."""
        self._log.info(
            "session_refused",
            event_type="playback.refused",
            mode=mode,
            reason=reason,
        )

    def session_ended(self, mode: str, reason: str, duration_s: float) -> None:
        """Log session end."""
        self._log.info(
            "session_ended",
            event_type="playback.ended",
            mode=mode,
            reason=reason,
            duration_s=duration_s,
        )

    def state_change(self, old_state: str, new_state: str, reason: str) -> None:
        """Log state transition."""
        self._log.debug(
            "state_change",
            event_type="playback.state_change",
            old_state=old_state,
            new_state=new_state,
            reason=reason,
        )

    def audio_loaded(self, name: str, duration_s: float) -> None:
        """Log a replaced audio track."""
        self._log.info(
            "audio_loaded",
            event_type="playback.audio_loaded",
            name=name,
            duration_s=duration_s,
        )


class ExportLogger:
    """Logger for export pipeline events."""

    def __init__(self, engine_id: str) -> None:
        self._engine_id = engine_id
        self._log = get_logger("export").bind(engine_id=engine_id)

    def export_started(self, mode: str, window_ms: int) -> None:
        """Log export start."""
        self._log.info(
            "export_started",
            event_type="export.started",
            mode=mode,
            window_ms=window_ms,
        )

    def audio_track_unavailable(self, reason: str) -> None:
        """Log export continuing without an audio track."""
        self._log.warning(
            "export_audio_track_unavailable",
            event_type="export.audio_track_unavailable",
            reason=reason,
        )

    def export_captured(self, chunks: int, size_bytes: int, elapsed_ms: float) -> None:
        """Log recorder finalisation."""
        self._log.info(
            "export_captured",
            event_type="export.captured",
            chunks=chunks,
            size_bytes=size_bytes,
            elapsed_ms=elapsed_ms,
        )

    def transcode_failed(self, error: str) -> None:
        """Log transcode failure with raw-clip fallback."""
        self._log.error(
            "transcode_failed_returning_raw",
            event_type="export.transcode_failed",
            error=error,
        )

    def export_completed(self, mime_type: str, size_bytes: int, transcoded: bool) -> None:
        """Log export completion."""
        self._log.info(
            "export_completed",
            event_type="export.completed",
            mime_type=mime_type,
            size_bytes=size_bytes,
            transcoded=transcoded,
        )


def init_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Initialize logging with defaults.

    Call this once at application startup.
    """
    configure_logging(level=level, json_format=json_format)
