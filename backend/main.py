# main.py — Trackify API
# Features:
# - Request IDs echoed on every response
# - Security headers
# - Domain error -> HTTP mapping with a uniform error body
# - Health check against the task store

import os
import uuid
import time
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, InterfaceError

from database import init_db, close_db, async_session_maker
from errors import TrackifyError
from telemetry import setup_telemetry

VERSION = "1.0.0"

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("trackify")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _config_warnings() -> list:
    """Configuration that works but should not reach production"""
    found = []
    if len(os.getenv("JWT_SECRET_KEY", "")) < 32:
        found.append("JWT_SECRET_KEY is unset or shorter than 32 characters; tokens will not survive a restart")
    if os.getenv("ENVIRONMENT") == "production" and os.getenv("DATABASE_URL", "").startswith("sqlite"):
        found.append("SQLite DATABASE_URL in production: dependency writes are only serialised per process")
    return found


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Trackify v%s", VERSION)
    await init_db()
    for warning in _config_warnings():
        logger.warning(warning)
    # No-op unless OTEL_EXPORTER_OTLP_ENDPOINT is set
    setup_telemetry(app)
    yield
    logger.info("Shutting down Trackify")
    await close_db()


app = FastAPI(
    title="Trackify",
    description="Task tracking with sharing and dependency management",
    version=VERSION,
    lifespan=lifespan,
)

# ============================================================
# CORS
# ============================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001").split(",")
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# ============================================================
# MIDDLEWARE: Request context
# ============================================================

@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request.state.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    started = time.perf_counter()

    response = await call_next(request)

    elapsed = time.perf_counter() - started
    response.headers["X-Request-ID"] = request.state.request_id
    response.headers["X-Response-Time"] = f"{elapsed:.4f}s"
    response.headers.update(SECURITY_HEADERS)
    logger.info(
        "%s %s -> %s (%.3fs) rid=%s",
        request.method, request.url.path, response.status_code, elapsed, request.state.request_id[:8],
    )
    return response


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

def _error_response(request: Request, status_code: int, detail: Any, details: Optional[dict] = None) -> JSONResponse:
    body = {"detail": detail, "request_id": getattr(request.state, "request_id", None)}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@app.exception_handler(TrackifyError)
async def domain_exception_handler(request: Request, exc: TrackifyError):
    return _error_response(request, exc.status_code, exc.detail, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"type": err.get("type"), "loc": list(err.get("loc", ())), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return _error_response(request, 422, errors)


@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def storage_exception_handler(request: Request, exc: Exception):
    logger.error("Storage unavailable: %s", exc, exc_info=True)
    return _error_response(request, 503, "Storage unavailable")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return _error_response(request, 500, "Internal server error")


# ============================================================
# ROUTERS
# ============================================================

from routers import auth, users, tasks

app.include_router(auth.router)
app.include_router(auth.profile_router)
app.include_router(users.router)
app.include_router(tasks.router)


# ============================================================
# HEALTH & ROOT
# ============================================================

@app.get("/health")
async def health_check():
    """Liveness plus a round trip to the database"""
    try:
        async with async_session_maker() as db:
            await db.execute(text("SELECT 1"))
        database = "connected"
    except (OperationalError, InterfaceError, OSError) as e:
        database = f"error: {str(e)[:100]}"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "version": VERSION,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "database": database,
    }


@app.get("/")
async def root():
    return {"name": "Trackify", "version": VERSION, "docs": "/docs", "health": "/health"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        workers=int(os.getenv("WORKERS", "1")),
        reload=os.getenv("ENVIRONMENT") == "development",
    )
