import logging

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import sentry_sdk
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .routers import (
    auth,
    clubs,
    competitions,
    games,
    leaderboards,
    notifications,
    proposals,
    rulesets,
    tournaments,
)
from .config import API_PREFIX, allow_credentials, allowed_origins
from .db import get_session
from .exceptions import DomainException, InvalidArgument, ProblemDetail
from .utils.sentry import init_sentry, sentry_enabled

logger = logging.getLogger(__name__)

init_sentry()

app = FastAPI(
    title="Mahjong Club Ledger API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.state.limiter = auth.limiter
app.add_exception_handler(RateLimitExceeded, auth.rate_limit_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=allow_credentials(),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Refuse to boot with a missing or weak signing key.
auth.get_jwt_secret()

logger.info("Serving ledger API under %r", API_PREFIX)


def _problem(
    request: Request,
    status: int,
    title: str,
    code: str,
    detail: str | None = None,
    type_: str = "about:blank",
) -> JSONResponse:
    body = ProblemDetail(
        type=type_,
        title=title,
        detail=detail,
        status=status,
        instance=request.url.path,
        code=code,
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        media_type="application/problem+json",
    )


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        where = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        what = error.get("msg", "invalid value")
        parts.append(f"{where}: {what}" if where else what)
    return "; ".join(parts) or "Invalid payload."


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    return _problem(request, exc.status_code, exc.title, exc.code, exc.detail, exc.type)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return await domain_exception_handler(
        request, InvalidArgument(_describe_validation_errors(exc))
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _problem(
        request,
        exc.status_code,
        detail,
        getattr(exc, "code", f"http_{exc.status_code}"),
        detail,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return _problem(request, 500, "Internal Server Error", "internal_server_error", str(exc))


@app.get("/healthz", tags=["health"])
def root_healthz():
    """Liveness check for proxies; never touches the database."""
    return {"status": "ok"}


api_router = APIRouter(prefix=API_PREFIX)


@api_router.get("", tags=["meta"])
def api_root():
    return {"message": "Mahjong Club Ledger API. See /docs."}


@api_router.get("/healthz", tags=["health"])
async def api_healthz(session: AsyncSession = Depends(get_session)):
    """Readiness check: runs a trivial query against the ledger database."""
    await session.execute(text("SELECT 1"))
    return {"status": "ok", "database": "ok"}


@api_router.post("/sentry-test", tags=["health"])
def sentry_test():
    if not sentry_enabled():
        raise HTTPException(status_code=400, detail="Sentry is not configured (SENTRY_DSN missing)")
    event_id = sentry_sdk.capture_message("Ledger Sentry self-test", level="info")
    return {"status": "sent", "eventId": str(event_id)}


v0_router = APIRouter(prefix="/v0")
for module in (
    clubs,
    rulesets,
    competitions,
    tournaments,
    leaderboards,
    games,
    proposals,
    notifications,
):
    v0_router.include_router(module.router)

api_router.include_router(v0_router)
app.include_router(api_router)
