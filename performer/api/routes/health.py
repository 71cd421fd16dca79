"""Health check endpoints.

- /healthz: Liveness probe (is the process alive?)
- /readyz: Readiness probe (is the engine ready to drive poses?)
- /metrics: Prometheus metrics endpoint
"""

from typing import Any

from fastapi import APIRouter, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["health"])


_ready: bool = False
_components: dict[str, bool] = {
    "engine": False,
    "speech": False,
    "transcoder": False,
}

# Components the service cannot run without
CRITICAL_COMPONENTS = ("engine",)


def set_ready(ready: bool) -> None:
    """Set overall readiness status."""
    global _ready
    _ready = ready


def set_component_health(component: str, healthy: bool) -> None:
    """Set health status for a specific component."""
    if component in _components:
        _components[component] = healthy


def get_component_health() -> dict[str, bool]:
    """Get health status of all components."""
    return _components.copy()


@router.get("/healthz", response_model=dict[str, str])
async def healthz() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "alive"}


@router.get("/readyz")
async def readyz(response: Response) -> dict[str, Any]:
    """Readiness probe.

    Returns 503 until the engine is up. Speech and transcoding are
    optional: without them text mode or MP4 export degrade.
    """
    all_critical_ready = all(_components.get(c, False) for c in CRITICAL_COMPONENTS)

    if _ready and all_critical_ready:
        return {"status": "ready", "components": _components}

    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "not_ready", "components": _components}


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
