from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from runpool.config import settings
from runpool.errors import ConfigurationError, RunPoolError
from runpool.logging_setup import configure_logging
from runpool.routes.system import router as system_router
from runpool.routes.groups import router as groups_router
from runpool.routes.challenges import router as challenges_router
from runpool.routes.recap import router as recap_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for weekly group mileage challenges"
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
app.include_router(groups_router)
app.include_router(challenges_router)
app.include_router(recap_router)

@app.exception_handler(RunPoolError)
async def runpool_error_handler(request: Request, exc: RunPoolError):
    if isinstance(exc, ConfigurationError):
        log.error("configuration_error", setting=exc.setting, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"status": "error", "error": exc.message})

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    try:
        response: Response = await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()
    response.headers["X-Request-ID"] = rid
    return response
