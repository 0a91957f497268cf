#  Project Scaffolder - FastAPI Application
#
#  Main app setup: lifespan, exception mapping, request context, routers.
#  Creates the DI container and manages service lifecycle.
#
#  Depends on: config.py, container.py, routes/*.py, middleware/auth.py
#  Used by:    run.py

import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from scaffolder.config import CORS_ORIGINS, DB_PATH, validate_config
from scaffolder.container import Container
from scaffolder.exceptions import (
    CodeParseError,
    DeploymentPipelineError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ProviderNotConfiguredError,
    ScaffolderError,
    UnknownProviderError,
    UpstreamError,
)
from scaffolder.logging_config import set_project_id, set_request_id, set_request_meta
from scaffolder.middleware.auth import get_current_user
from scaffolder.rate_limit import limiter
from scaffolder.routes.admin import router as admin_router
from scaffolder.routes.auth import router as auth_router
from scaffolder.routes.deploy import router as deploy_router
from scaffolder.routes.generate import router as generate_router
from scaffolder.routes.projects import router as projects_router
from scaffolder.routes.providers import health_router, router as providers_router

logger = logging.getLogger("scaffolder.app")

# Create and wire the DI container
container = Container()

# Auth dependency for all protected routes
_auth_dep = [Depends(get_current_user)]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle.

    AsyncExitStack unwinds already-initialized resources if a later
    startup step fails.
    """
    logger.info("Project Scaffolder starting...")

    validate_config()

    db = container.db()
    http_client = container.http_client()

    async with AsyncExitStack() as stack:
        await db.init(DB_PATH)
        stack.push_async_callback(db.close)

        # Shared httpx client — close on shutdown
        stack.push_async_callback(http_client.aclose)

        yield

    logger.info("Project Scaffolder shutting down")


app = FastAPI(
    title="Project Scaffolder",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."},
    )


# Business error mapping
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ForbiddenError)
async def forbidden_handler(request: Request, exc: ForbiddenError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(CodeParseError)
async def code_parse_handler(request: Request, exc: CodeParseError):
    return JSONResponse(status_code=422, content={"success": False, "detail": str(exc)})


@app.exception_handler(ProviderNotConfiguredError)
async def not_configured_handler(request: Request, exc: ProviderNotConfiguredError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(UnknownProviderError)
async def unknown_provider_handler(request: Request, exc: UnknownProviderError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(DeploymentPipelineError)
async def pipeline_handler(request: Request, exc: DeploymentPipelineError):
    result = exc.result
    return JSONResponse(status_code=502, content={
        "success": False,
        "detail": str(exc),
        "error_type": type(result.cause).__name__ if result and result.cause else None,
        "repo_url": result.repo_url if result else None,
    })


@app.exception_handler(UpstreamError)
async def upstream_handler(request: Request, exc: UpstreamError):
    return JSONResponse(status_code=502, content={"success": False, "detail": str(exc)})


@app.exception_handler(ScaffolderError)
async def scaffolder_handler(request: Request, exc: ScaffolderError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


# Request ID tracing + audit metadata
class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        set_request_id(rid)
        set_request_meta(_client_ip(request), request.headers.get("user-agent"))
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = rid
            return response
        finally:
            set_request_id(None)
            set_request_meta(None, None)
            set_project_id(None)

app.add_middleware(RequestContextMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)

# Health check (public, unauthenticated)
app.include_router(health_router, prefix="/api")

# Auth routes (public — no token required)
app.include_router(auth_router, prefix="/api")

# Protected API routes (require valid JWT)
app.include_router(projects_router, prefix="/api", dependencies=_auth_dep)
app.include_router(generate_router, prefix="/api", dependencies=_auth_dep)
app.include_router(deploy_router, prefix="/api", dependencies=_auth_dep)
app.include_router(providers_router, prefix="/api", dependencies=_auth_dep)
app.include_router(admin_router, prefix="/api", dependencies=_auth_dep)
