from __future__ import annotations

import time

from fastapi import APIRouter, Request

from mandate_app.schemas.common import HealthOut

router = APIRouter(prefix="/api", tags=["health"])

SERVICE_NAME = "mandate-app"


@router.get("/health", response_model=HealthOut)
def health(request: Request) -> HealthOut:
    state = request.app.state
    startup = getattr(state, "startup", None)
    started_at = getattr(state, "started_at", None) or time.monotonic()
    return HealthOut(
        status="ok",
        service=SERVICE_NAME,
        uptime=round(time.monotonic() - started_at, 3),
        fga_ready=bool(startup and startup.ready.is_set()),
    )
