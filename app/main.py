"""Rental billing service: FastAPI application and billing job wiring"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.database import init_db, close_db
from app.core.logging import setup_logging, get_logger
from app.core.middleware import RequestIDMiddleware, RequestTimingMiddleware
from app.core.rate_limit import limiter
from app.api.v1.router import api_router
from app.services.billing_scheduler import setup_billing_cron_job

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables in development and own the billing scheduler for the app's lifetime"""
    logger.info(
        "Starting billing service",
        extra={"environment": settings.ENVIRONMENT, "billing_cron": settings.BILLING_CRON_ENABLED},
    )
    if settings.is_development:
        # Alembic owns the schema everywhere else
        await init_db()

    scheduler = setup_billing_cron_job() if settings.BILLING_CRON_ENABLED else None
    app.state.billing_scheduler = scheduler

    try:
        yield
    finally:
        logger.info("Stopping billing service")
        if scheduler is not None:
            await scheduler.stop()
        await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Recurring invoice generation and billing for equipment rentals",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=[settings.ALLOWED_HEADERS],
    expose_headers=["X-Request-ID", "X-Process-Time"],
)
# Last added runs outermost: request ids are set before timing logs them
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(RequestIDMiddleware)

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Liveness plus the state of the background billing job"""
    scheduler = getattr(request.app.state, "billing_scheduler", None)
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "billing_cron": "running" if scheduler is not None and scheduler.is_running else "disabled",
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"{settings.APP_NAME} is running",
        "docs": "/docs",
        "health": "/health",
        "api": settings.API_V1_PREFIX,
    }


def _request_context(request: Request) -> dict:
    return {
        "path": request.url.path,
        "method": request.method,
        "correlation_id": getattr(request.state, "request_id", None),
    }


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Rejected request payload", extra=_request_context(request))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder({"detail": exc.errors()}),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", extra=_request_context(request), exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
