"""
HTTP mapping for booking failures.
"""

from fastapi import Request
from fastapi.responses import JSONResponse

from app.infrastructure.observability.logging import get_logger
from app.models.api.booking_response import ErrorResponse
from app.services.scheduling.errors import BookingError

logger = get_logger(__name__)


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Return only the generic user message; the detail stays in the logs."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Booking request failed",
        path=request.url.path,
        status_code=exc.status_code,
        error_type=type(exc).__name__,
        detail=exc.detail,
        booking_id=exc.booking_id,
    )
    body = ErrorResponse(error=exc.user_message, retryable=exc.retryable)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())
