"""
Booking Routes
Submission endpoint for the final step of the qualification form.
"""

from fastapi import APIRouter, Depends, status

from app.dependencies import get_booking_service
from app.models.api.booking_request import CreateBookingRequest
from app.models.api.booking_response import BookingResponse
from app.services.scheduling.booking_service import BookingService

router = APIRouter(tags=["bookings"])


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(request: CreateBookingRequest, service: BookingService = Depends(get_booking_service)):
    """Book the chosen slot. Conflicts return 409, calendar outages 503."""
    booking = await service.create_booking(request.to_submission())
    return BookingResponse.from_booking(booking)
