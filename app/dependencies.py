"""
FastAPI dependency providers.

Long-lived clients (calendar factory, CRM, email) live on ``app.state`` and
are created by the lifespan; services are cheap and built per request so the
calendar configuration is always read fresh.
"""

from fastapi import Depends, Request

from app.config import settings
from app.services.calendar.availability_service import CalendarClientFactory
from app.services.crm.hubspot_client import HubSpotClient
from app.services.email.resend_client import ResendEmailSender
from app.services.scheduling.booking_repository import BookingRepository
from app.services.scheduling.booking_service import BookingService
from app.services.scheduling.config_resolver import ConfigResolver
from app.services.scheduling.manage_access_service import ManageAccessService, VerificationCodeStore
from app.services.scheduling.slot_lock_store import SlotLockStore
from app.services.scheduling.slot_query_service import SlotQueryService


def get_calendar_factory(request: Request) -> CalendarClientFactory:
    return request.app.state.calendar_factory


def get_crm_client(request: Request) -> HubSpotClient | None:
    return getattr(request.app.state, "crm_client", None)


def get_email_sender(request: Request) -> ResendEmailSender | None:
    return getattr(request.app.state, "email_sender", None)


def get_config_resolver() -> ConfigResolver:
    return ConfigResolver()


def get_lock_store() -> SlotLockStore:
    return SlotLockStore(orphan_ttl_minutes=settings.SLOT_LOCK_TTL_MINUTES)


def get_booking_repository() -> BookingRepository:
    return BookingRepository()


def get_slot_query_service(
    config_resolver: ConfigResolver = Depends(get_config_resolver),
    lock_store: SlotLockStore = Depends(get_lock_store),
    calendar_factory: CalendarClientFactory = Depends(get_calendar_factory),
) -> SlotQueryService:
    return SlotQueryService(config_resolver, lock_store, calendar_factory)


def get_booking_service(
    config_resolver: ConfigResolver = Depends(get_config_resolver),
    lock_store: SlotLockStore = Depends(get_lock_store),
    bookings: BookingRepository = Depends(get_booking_repository),
    calendar_factory: CalendarClientFactory = Depends(get_calendar_factory),
    crm: HubSpotClient | None = Depends(get_crm_client),
) -> BookingService:
    return BookingService(config_resolver, lock_store, bookings, calendar_factory, crm=crm)


def get_manage_access_service(
    bookings: BookingRepository = Depends(get_booking_repository),
    email_sender: ResendEmailSender | None = Depends(get_email_sender),
) -> ManageAccessService:
    return ManageAccessService(VerificationCodeStore(), bookings, email_sender)
