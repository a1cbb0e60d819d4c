import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.db import create_schema, engine
from .core.responses import ErrorCodes, error_response
from .errors import (
    ConflictError,
    InvalidInput,
    InvalidTimezone,
    NotFoundError,
    OutOfWindow,
    SchedulingError,
    UnroutableSubmission,
    ValidationError,
)
from .public_booking import router as public_booking_router
from .routing_public import router as routing_public_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Booking Engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(public_booking_router)
app.include_router(routing_public_router)


# ────────────────────────────────────────────────────────────────
# Error handling
# ────────────────────────────────────────────────────────────────

ERROR_STATUS: dict[type[SchedulingError], int] = {
    InvalidTimezone: status.HTTP_400_BAD_REQUEST,
    InvalidInput: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    OutOfWindow: 422,
    ValidationError: 422,
    UnroutableSubmission: 422,
}


def status_for(exc: SchedulingError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"Unmapped scheduling error on {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=error_response(exc.code, exc.message, exc.details),
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning(f"Rejected request on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response(ErrorCodes.INVALID_INPUT, str(exc)),
    )


# ────────────────────────────────────────────────────────────────
# Lifecycle
# ────────────────────────────────────────────────────────────────

@app.on_event("startup")
async def on_startup():
    if settings.storage_backend == "sql":
        await create_schema()
    logger.info(f"Booking engine started (storage={settings.storage_backend})")


@app.on_event("shutdown")
async def on_shutdown():
    await engine.dispose()


@app.get("/health")
async def healthcheck():
    return {"ok": True}
