from __future__ import annotations
import asyncio
import contextlib
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from launchspace.config import settings
from launchspace.errors import LaunchError
from launchspace.logging_setup import configure_logging
from launchspace.routes.system import router as system_router
from launchspace.routes.competitions import router as competitions_router
from launchspace.routes.submissions import router as submissions_router
from launchspace.routes.votes import router as votes_router
from launchspace.routes.admin import router as admin_router
from launchspace.routes.stripe_webhooks import router as stripe_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha,
             store=settings.store_backend)
    task = None
    if settings.reconcile_interval_seconds > 0:
        from launchspace.deps import get_events, get_store
        from launchspace.jobs.reconcile_competitions import reconcile_forever
        task = asyncio.create_task(
            reconcile_forever(get_store(), settings.reconcile_interval_seconds, events=get_events())
        )
    yield
    # Shutdown
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for weekly AI project launch competitions"
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system_router)
app.include_router(competitions_router)
app.include_router(submissions_router)
app.include_router(votes_router)
app.include_router(admin_router)
app.include_router(stripe_router)

@app.exception_handler(LaunchError)
async def launch_error_handler(request: Request, exc: LaunchError):
    level = log.warning if exc.status_code >= 409 else log.info
    level("request_rejected", path=request.url.path, code=exc.code, status=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
