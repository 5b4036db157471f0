from __future__ import annotations
from fastapi import APIRouter, Depends, Request
from launchspace.clock import Clock
from launchspace.config import settings
from launchspace.deps import get_clock

router = APIRouter(tags=["system"])

@router.get("/health")
async def health(request: Request, clock: Clock = Depends(get_clock)):
    return {
        "status": "ok",
        "env": settings.environment,
        "store": settings.store_backend,
        "competition_timezone": settings.competition_timezone,
        "time": clock.now().isoformat(),
        "request_id": request.state.request_id,
    }

@router.get("/version")
async def version():
    return {
        "name": settings.app_name,
        "display_name": settings.app_display_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
    }
