# app/main.py
from __future__ import annotations

# Load .env early so settings pick it up everywhere
from dotenv import load_dotenv
load_dotenv()

import sqlalchemy as sa
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import BookingError
from app.core.logging import LoggingMiddleware, get_logger, setup_logging

# Set up structured logging
setup_logging(
    debug=settings.is_development,
    max_log_length=settings.MAX_LOG_LENGTH,
    level=settings.LOG_LEVEL,
)
logger = get_logger(__name__)

from app.api.auth import api_key_valid
from app.db.session import get_session

# Routers
from app.api.routes.availability import router as availability_router
from app.api.routes.bookings import router as bookings_router
from app.api.routes.events import router as events_router

app = FastAPI(title="Physio Booking", description="Clinic scheduling and booking engine")

logging_middleware = LoggingMiddleware(
    log_requests=settings.LOG_REQUESTS or settings.is_development,
    log_responses=settings.LOG_RESPONSES or settings.is_development,
    slow_threshold=settings.SLOW_REQUEST_THRESHOLD,
)


# -------- Error mapping --------
@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.retryable:
        logger.warning("store_unavailable", path=request.url.path, error=exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.http_status)


# -------- Health / readiness (public) --------
@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"ok": True}


@app.get("/readyz", include_in_schema=False)
async def readyz(db: AsyncSession = Depends(get_session)):
    await db.execute(sa.text("SELECT 1"))
    return {"db": "ok"}


# -------- Global security gate (single place) --------
# Public paths (do NOT require X-API-Key here)
PUBLIC_EXACT = {
    "/healthz",
    "/readyz",
    "/docs",
    "/openapi.json",
}


def _is_public(path: str) -> bool:
    return path in PUBLIC_EXACT


@app.middleware("http")
async def lock_all(request, call_next):
    path = request.url.path
    if _is_public(path):
        return await call_next(request)

    api_key = request.headers.get("X-API-Key", "")
    if not api_key_valid(api_key):
        logger.warning("api_key_rejected", endpoint=path, has_key=bool(api_key))
        return JSONResponse({"detail": "Invalid or missing API key"}, status_code=401)

    return await call_next(request)


# Registered last so it wraps the gate and every rejection carries a correlation id
app.middleware("http")(logging_middleware)

# -------- Include routers --------
app.include_router(availability_router)
app.include_router(bookings_router)
app.include_router(events_router)


@app.on_event("startup")
async def startup_event():
    logger.info("application_startup", env=settings.APP_ENV, timezone=settings.LOCAL_TIMEZONE)
