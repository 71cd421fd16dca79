"""Performer Exception Hierarchy.

Hierarchy:
    PerformerError (base)
    ├── ConfigurationError
    │   └── InvalidEmotionError
    ├── PlaybackError
    │   └── PlaybackStateError
    ├── CaptureError
    └── TranscodeError

Precondition failures (no speech support, no audio loaded) are not
exceptions: engine operations return False/None so callers re-check the
availability flags instead of catching.
"""

from typing import Any


class PerformerError(Exception):
    """Base exception for all performer errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PerformerError):
    """Base exception for configuration-related errors."""

    pass


class InvalidEmotionError(ConfigurationError):
    """Raised when an emotion profile field is out of range."""

    def __init__(self, field_name: str, value: Any, reason: str) -> None:
        super().__init__(
            message=f"Invalid emotion field {field_name}: {reason}",
            details={"field": field_name, "value": str(value), "reason": reason},
            recoverable=False,
        )
        self.field_name = field_name


# =============================================================================
# Playback Errors
# =============================================================================


class PlaybackError(PerformerError):
    """Base exception for playback-related errors."""

    pass


class PlaybackStateError(PlaybackError):
    """Raised for invalid playback state transitions."""

    def __init__(
        self,
        current_state: str,
        target_state: str,
    ) -> None:
        super().__init__(
            message=f"Invalid transition: {current_state} → {target_state}",
            details={"current_state": current_state, "target_state": target_state},
            recoverable=False,
        )


# =============================================================================
# Export Errors
# =============================================================================


class CaptureError(PerformerError):
    """Raised when a capture track cannot be acquired."""

    def __init__(self, track: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to capture {track} track: {reason}",
            details={"track": track, "reason": reason},
            recoverable=True,  # Export continues without the track
        )


class TranscodeError(PerformerError):
    """Raised when re-encoding a captured clip fails."""

    def __init__(self, reason: str, returncode: int | None = None) -> None:
        details: dict[str, Any] = {"reason": reason}
        if returncode is not None:
            details["returncode"] = returncode
        super().__init__(
            message=f"Transcode failed: {reason}",
            details=details,
            recoverable=True,  # Raw clip is still usable
        )
