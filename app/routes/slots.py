"""
Slot Availability Routes
Public endpoints the booking widget uses to pick a date and time.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_config_resolver, get_slot_query_service
from app.models.api.booking_request import SlotsRequest
from app.models.api.booking_response import CalendarConfigResponse, SlotsResponse
from app.services.scheduling.config_resolver import ConfigResolver
from app.services.scheduling.slot_generator import generate_slots
from app.services.scheduling.slot_query_service import SlotQueryService

router = APIRouter(tags=["slots"])


@router.post("/slots", response_model=SlotsResponse)
async def list_slots(request: SlotsRequest, service: SlotQueryService = Depends(get_slot_query_service)):
    """Free slots for a date, or an empty list with the reason."""
    availability = await service.list_available(request.date)
    return SlotsResponse(
        date=request.date,
        slots=availability.slots,
        message=availability.message,
        test_mode=availability.test_mode,
    )


@router.get("/calendar-config", response_model=CalendarConfigResponse)
async def calendar_config(resolver: ConfigResolver = Depends(get_config_resolver)):
    """Business days, hours and blocked dates the widget greys out."""
    config = await resolver.resolve()
    return CalendarConfigResponse(config=config.to_public_dict(), slots=generate_slots(config))
