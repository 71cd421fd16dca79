"""Observability: structured logging and Prometheus metrics."""

from performer.observability.logging import (
    ExportLogger,
    PlaybackLogger,
    configure_logging,
    get_logger,
    init_logging,
)

__all__ = [
    "ExportLogger",
    "PlaybackLogger",
    "configure_logging",
    "get_logger",
    "init_logging",
]
