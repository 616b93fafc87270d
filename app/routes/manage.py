"""
Manage-Booking Routes
Email verification plus reschedule/cancel for a visitor's own bookings.
"""

from fastapi import APIRouter, Depends

from app.auth.verify import manage_session_dependency
from app.dependencies import get_booking_service, get_manage_access_service
from app.models.api.booking_request import CancelRequest, RescheduleRequest, SendCodeRequest, VerifyCodeRequest
from app.models.api.booking_response import (
    BookingResponse,
    ManagedBookingResponse,
    MessageResponse,
    VerifyCodeResponse,
)
from app.services.scheduling.booking_service import BookingService
from app.services.scheduling.manage_access_service import ManageAccessService

router = APIRouter(prefix="/manage", tags=["manage"])

SEND_CODE_MESSAGE = "If you have upcoming bookings, you will receive a verification code."


@router.post("/send-code", response_model=MessageResponse)
async def send_code(request: SendCodeRequest, service: ManageAccessService = Depends(get_manage_access_service)):
    await service.send_code(request.email)
    return MessageResponse(message=SEND_CODE_MESSAGE)


@router.post("/verify", response_model=VerifyCodeResponse)
async def verify_code(request: VerifyCodeRequest, service: ManageAccessService = Depends(get_manage_access_service)):
    session_token, bookings = await service.verify_code(request.email, request.code)
    return VerifyCodeResponse(
        session_token=session_token,
        bookings=[ManagedBookingResponse.from_booking(booking) for booking in bookings],
    )


@router.post("/reschedule", response_model=BookingResponse)
async def reschedule(
    request: RescheduleRequest,
    session_email: str = Depends(manage_session_dependency),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.reschedule_booking(request.booking_id, session_email, request.new_date, request.new_time)
    return BookingResponse.from_booking(booking)


@router.post("/cancel", response_model=BookingResponse)
async def cancel(
    request: CancelRequest,
    session_email: str = Depends(manage_session_dependency),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.cancel_booking(request.booking_id, session_email, reason=request.reason)
    return BookingResponse.from_booking(booking)
