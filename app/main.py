"""
Application entrypoint: lifespan-managed resources, routers and request logging.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.routes import bookings, health, manage, slots
from app.routes.errors import booking_error_handler
from app.services.calendar.availability_service import CalendarClientFactory
from app.services.crm.hubspot_client import HubSpotClient
from app.services.email.resend_client import ResendEmailSender
from app.services.scheduling.errors import BookingError

# Setup logging before creating the app
setup_logging(log_level=settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        logger.info("Initializing database pool")
        await db_pool.initialize()
        await db_pool.apply_schema()
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        await db_pool.close()
        raise

    app.state.calendar_factory = CalendarClientFactory.from_settings()
    app.state.crm_client = HubSpotClient(settings.HUBSPOT_ACCESS_TOKEN) if settings.HUBSPOT_ACCESS_TOKEN else None
    app.state.email_sender = (
        ResendEmailSender(settings.RESEND_API_KEY, settings.EMAIL_FROM) if settings.RESEND_API_KEY else None
    )

    logger.info(
        "All services initialized successfully",
        calendar_configured=settings.calendar_configured(),
        crm_enabled=app.state.crm_client is not None,
        email_enabled=app.state.email_sender is not None,
    )

    yield

    # Shutdown sequence (reverse order)
    logger.info("Application shutting down")

    if app.state.email_sender is not None:
        await app.state.email_sender.close()
    if app.state.crm_client is not None:
        await app.state.crm_client.close()
    await app.state.calendar_factory.close()

    logger.info("Closing database pool")
    await db_pool.close()
    logger.info("All services closed successfully")


app = FastAPI(
    title="Lead Scheduler",
    description="Lead qualification scheduling: slot availability and booking",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(BookingError, booking_error_handler)

# Session tokens travel in the Authorization header, no cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# Include routers
app.include_router(health.router)
app.include_router(slots.router)
app.include_router(bookings.router)
app.include_router(manage.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(request.method, request.url.path, response.status_code, round(process_time, 2))
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
