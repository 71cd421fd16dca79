"""Prometheus Metrics - Engine observability.

Exports:
- Playback sessions started/ended by mode and reason
- Pose tick compute time
- Export outcomes and transcode failures
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# -----------------------------------------------------------------------------
# Histograms
# -----------------------------------------------------------------------------

# Time spent inside one animation tick (driver + compositor + publish)
TICK_DURATION = Histogram(
    "performer_tick_seconds",
    "Animation tick compute time",
    buckets=[0.0001, 0.00025, 0.0005, 0.001, 0.002, 0.004, 0.008, 0.016],
)

EXPORT_DURATION = Histogram(
    "performer_export_seconds",
    "Wall-clock duration of an export run including transcoding",
    buckets=[1.0, 2.0, 4.0, 8.0, 10.0, 15.0, 30.0, 60.0],
)

# -----------------------------------------------------------------------------
# Counters
# -----------------------------------------------------------------------------

SESSION_STARTED = Counter(
    "performer_sessions_started_total",
    "Total playback sessions started",
    ["mode"],  # text, audio
)

SESSION_ENDED = Counter(
    "performer_sessions_ended_total",
    "Total playback sessions ended",
    ["reason"],  # user_stop, speech_ended, media_ended, timeline_complete, ...
)

SESSION_REFUSED = Counter(
    "performer_sessions_refused_total",
    "Starts refused because the driver was unavailable",
    ["mode"],
)

EXPORTS = Counter(
    "performer_exports_total",
    "Export runs by outcome",
    ["outcome"],  # transcoded, raw, no_surface, busy
)

TRANSCODE_FAILURES = Counter(
    "performer_transcode_failures_total",
    "Transcode runs that fell back to the raw clip",
)

# -----------------------------------------------------------------------------
# Gauges
# -----------------------------------------------------------------------------

ACTIVE_SESSIONS = Gauge(
    "performer_active_sessions",
    "Currently active playback sessions (0 or 1 per engine)",
)

# -----------------------------------------------------------------------------
# Info
# -----------------------------------------------------------------------------

BUILD_INFO = Info(
    "performer_build",
    "Build information",
)


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def record_session_start(mode: str) -> None:
    """Record session start."""
    SESSION_STARTED.labels(mode=mode).inc()
    ACTIVE_SESSIONS.inc()


def record_session_end(reason: str) -> None:
    """Record session end."""
    SESSION_ENDED.labels(reason=reason).inc()
    ACTIVE_SESSIONS.dec()


def record_session_refused(mode: str) -> None:
    """Record a start refused by a precondition."""
    SESSION_REFUSED.labels(mode=mode).inc()


def record_tick(duration_s: float) -> None:
    """Record one animation tick."""
    TICK_DURATION.observe(duration_s)


def record_export(outcome: str, duration_s: float | None = None) -> None:
    """Record export outcome."""
    EXPORTS.labels(outcome=outcome).inc()
    if duration_s is not None:
        EXPORT_DURATION.observe(duration_s)


def record_transcode_failure() -> None:
    """Record transcode fallback."""
    TRANSCODE_FAILURES.inc()


def set_build_info(version: str) -> None:
    """Set build information."""
    BUILD_INFO.info({"version": version})
