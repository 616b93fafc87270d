"""
HubSpot CRM v3 client.
Contact upsert by email, deal and meeting creation associated to a contact.
Callers treat every HubSpot failure as non-fatal.
"""

import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import httpx

from app.infrastructure.observability.logging import get_logger, log_integration_call

logger = get_logger(__name__)

HUBSPOT_API_BASE_URL = "https://api.hubapi.com/crm/v3"
REQUEST_TIMEOUT = 15

# HUBSPOT_DEFINED association type ids
CONTACT_TO_DEAL_ASSOCIATION = 3
MEETING_TO_CONTACT_ASSOCIATION = 200

DEAL_PIPELINE = "default"
DEAL_STAGE = "qualifiedtobuy"
DEAL_CLOSE_DAYS = 30
MEETING_TITLE = "Account Verification Call"

# LeadDetails field -> custom contact property in the portal
QUALIFICATION_PROPERTIES = {
    "industry": "what_niche_is_the_brand_in___cloned_",
    "heard_from": "where_did_you_first_hear_about_us_main",
    "objective": "what_is_the_goal_for_your_company_brand_main",
    "budget": "advertising_budget_main",
    "role_type": "lead_type",
}


class HubSpotError(Exception):
    """Raised for any failed HubSpot API call."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class LeadDetails:
    """Qualification answers pushed to the contact and deal."""

    email: str
    first_name: str
    last_name: str
    website: str
    industry: str | None = None
    heard_from: str | None = None
    objective: str | None = None
    budget: str | None = None
    role_type: str | None = None


@dataclass(slots=True)
class CrmSyncResult:
    contact_id: str | None = None
    deal_id: str | None = None
    meeting_id: str | None = None


def _hubspot_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


class HubSpotClient:
    """Thin async client over the HubSpot CRM objects API."""

    def __init__(self, access_token: str, http_client: httpx.AsyncClient | None = None):
        self._access_token = access_token
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, operation: str, json: dict | None = None) -> dict:
        started = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                f"{HUBSPOT_API_BASE_URL}{path}",
                headers={
                    "Authorization": f"Bearer {self._access_token}",
                    "Content-Type": "application/json",
                },
                json=json,
            )
        except httpx.HTTPError as e:
            log_integration_call("hubspot", operation, False, (time.perf_counter() - started) * 1000, error=str(e))
            raise HubSpotError(f"HubSpot {operation} request failed: {e}") from e

        log_integration_call(
            "hubspot",
            operation,
            response.is_success,
            (time.perf_counter() - started) * 1000,
            status_code=response.status_code,
        )

        try:
            data = response.json() if response.text else {}
        except ValueError:
            data = {}

        if not response.is_success:
            message = data.get("message") if isinstance(data, dict) else None
            raise HubSpotError(message or f"HubSpot {operation} failed", status_code=response.status_code)

        return data if isinstance(data, dict) else {}

    async def search_contact(self, email: str) -> str | None:
        data = await self._request(
            "POST",
            "/objects/contacts/search",
            "search_contact",
            json={
                "filterGroups": [
                    {"filters": [{"propertyName": "email", "operator": "EQ", "value": email}]}
                ],
                "limit": 1,
            },
        )
        results = data.get("results") or []
        return results[0].get("id") if results else None

    async def create_contact(self, properties: dict) -> str:
        data = await self._request("POST", "/objects/contacts", "create_contact", json={"properties": properties})
        contact_id = data.get("id")
        if not contact_id:
            raise HubSpotError("HubSpot create_contact returned no id")
        return contact_id

    async def update_contact(self, contact_id: str, properties: dict) -> None:
        await self._request(
            "PATCH", f"/objects/contacts/{contact_id}", "update_contact", json={"properties": properties}
        )

    async def upsert_contact(self, lead: LeadDetails) -> str:
        """Find the contact by email and update it, or create it."""
        properties = {
            "email": lead.email,
            "firstname": lead.first_name,
            "lastname": lead.last_name,
            "website": lead.website,
            "lifecyclestage": "opportunity",
        }
        for field, hubspot_property in QUALIFICATION_PROPERTIES.items():
            value = getattr(lead, field)
            if value:
                properties[hubspot_property] = value

        existing_id = await self.search_contact(lead.email)
        if existing_id:
            await self.update_contact(existing_id, properties)
            return existing_id
        return await self.create_contact(properties)

    async def create_deal(self, contact_id: str, lead: LeadDetails) -> str | None:
        close_date = (datetime.now(UTC) + timedelta(days=DEAL_CLOSE_DAYS)).date().isoformat()
        data = await self._request(
            "POST",
            "/objects/deals",
            "create_deal",
            json={
                "properties": {
                    "dealname": f"{lead.website} - Access Request",
                    "pipeline": DEAL_PIPELINE,
                    "dealstage": DEAL_STAGE,
                    "amount": 0,
                    "closedate": close_date,
                },
                "associations": [
                    {
                        "to": {"id": contact_id},
                        "types": [
                            {
                                "associationCategory": "HUBSPOT_DEFINED",
                                "associationTypeId": CONTACT_TO_DEAL_ASSOCIATION,
                            }
                        ],
                    }
                ],
            },
        )
        return data.get("id")

    async def create_meeting(
        self,
        contact_id: str,
        lead: LeadDetails,
        start_time: datetime,
        end_time: datetime,
        meet_link: str | None,
    ) -> str | None:
        body_lines = [
            f"Name: {lead.first_name} {lead.last_name}",
            f"Website: {lead.website}",
            f"Industry: {lead.industry or 'N/A'}",
            f"Budget: {lead.budget or 'N/A'}",
            f"Objective: {lead.objective or 'N/A'}",
        ]
        if meet_link:
            body_lines.append(f"Join Meeting: {meet_link}")

        properties = {
            "hs_timestamp": _hubspot_timestamp(start_time),
            "hs_meeting_title": MEETING_TITLE,
            "hs_meeting_body": "\n".join(body_lines),
            "hs_meeting_start_time": _hubspot_timestamp(start_time),
            "hs_meeting_end_time": _hubspot_timestamp(end_time),
            "hs_meeting_outcome": "SCHEDULED",
        }
        if meet_link:
            properties["hs_meeting_external_url"] = meet_link
            properties["hs_meeting_location"] = "Google Meet"

        data = await self._request(
            "POST",
            "/objects/meetings",
            "create_meeting",
            json={
                "properties": properties,
                "associations": [
                    {
                        "to": {"id": contact_id},
                        "types": [
                            {
                                "associationCategory": "HUBSPOT_DEFINED",
                                "associationTypeId": MEETING_TO_CONTACT_ASSOCIATION,
                            }
                        ],
                    }
                ],
            },
        )
        return data.get("id")

    async def reschedule_meeting(self, meeting_id: str, start_time: datetime, end_time: datetime) -> None:
        await self._request(
            "PATCH",
            f"/objects/meetings/{meeting_id}",
            "reschedule_meeting",
            json={
                "properties": {
                    "hs_timestamp": _hubspot_timestamp(start_time),
                    "hs_meeting_start_time": _hubspot_timestamp(start_time),
                    "hs_meeting_end_time": _hubspot_timestamp(end_time),
                    "hs_meeting_outcome": "RESCHEDULED",
                }
            },
        )

    async def cancel_meeting(self, meeting_id: str) -> None:
        await self._request(
            "PATCH",
            f"/objects/meetings/{meeting_id}",
            "cancel_meeting",
            json={"properties": {"hs_meeting_outcome": "CANCELED"}},
        )
