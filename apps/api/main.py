"""
Mixmint Access API - FastAPI Backend
Entitlement checks, download tokens, rewards and DJ monetization.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings, validate_security_settings
from database import async_session_maker, engine, Base
import models  # noqa: F401
from routers import downloads, health, monetization, rewards
from services.download_tokens import purge_expired_tokens

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


async def _periodic_download_token_cleanup() -> None:
    interval_minutes = max(int(settings.DOWNLOAD_TOKEN_CLEANUP_INTERVAL_MINUTES), 0)
    if interval_minutes <= 0:
        return
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            async with async_session_maker() as db:
                removed = await purge_expired_tokens(db)
            if removed:
                print(f"🧹 Download token cleanup: removed={removed}")
        except Exception as exc:
            print(f"⚠️ Download token cleanup tick failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Mixmint Access API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    cleanup_task = None
    if int(settings.DOWNLOAD_TOKEN_CLEANUP_INTERVAL_MINUTES) > 0:
        cleanup_task = asyncio.create_task(_periodic_download_token_cleanup())
        print(
            "📅 Download token cleanup loop enabled "
            f"(every {int(settings.DOWNLOAD_TOKEN_CLEANUP_INTERVAL_MINUTES)} min)."
        )
    yield
    # Shutdown
    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
    print("👋 Shutting down API...")


app = FastAPI(
    title="Mixmint Access API",
    description="Purchase and subscription entitlements, download tokens and rewards",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": f"{location}: {message}" if location else message},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(downloads.router, tags=["Downloads"])
app.include_router(rewards.router, prefix="/rewards", tags=["Rewards"])
app.include_router(monetization.router, prefix="/monetization", tags=["Monetization"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Mixmint Access API",
        "version": "0.1.0",
        "status": "running"
    }
