"""
Resend transactional email client.
"""

import time
from datetime import UTC, datetime

import httpx

from app.infrastructure.observability.logging import get_logger, log_integration_call

logger = get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT = 10


class EmailSendError(Exception):
    """Raised when Resend rejects or cannot receive a message."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def verification_email_html(code: str, ttl_minutes: int) -> str:
    year = datetime.now(UTC).year
    return f"""<!DOCTYPE html>
<html>
<body style="margin:0;padding:40px 20px;background-color:#f4f4f5;font-family:Arial,sans-serif;">
  <div style="max-width:480px;margin:0 auto;background:#ffffff;border-radius:12px;padding:40px;">
    <p style="font-size:15px;color:#3f3f46;">
      You requested to manage your booking. Use the verification code below to continue:
    </p>
    <div style="margin:32px 0;padding:24px;background:#f4f4f5;border-radius:8px;text-align:center;">
      <span style="font-size:32px;font-weight:700;letter-spacing:8px;color:#18181b;">{code}</span>
    </div>
    <p style="font-size:14px;color:#71717a;">This code expires in <strong>{ttl_minutes} minutes</strong>.</p>
    <p style="font-size:14px;color:#71717a;">If you didn't request this, you can safely ignore this email.</p>
    <p style="font-size:12px;color:#a1a1aa;text-align:center;">&copy; {year}</p>
  </div>
</body>
</html>"""


class ResendEmailSender:
    def __init__(self, api_key: str, sender: str, http_client: httpx.AsyncClient | None = None):
        self._api_key = api_key
        self._sender = sender
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, to: str, subject: str, html: str) -> str | None:
        """
        Send one message and return the Resend message id.

        Raises:
            EmailSendError: If the request fails or Resend rejects it
        """
        started = time.perf_counter()
        try:
            response = await self._client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"from": self._sender, "to": to, "subject": subject, "html": html},
            )
        except httpx.HTTPError as e:
            log_integration_call("resend", "send_email", False, (time.perf_counter() - started) * 1000, error=str(e))
            raise EmailSendError(f"Resend request failed: {e}") from e

        log_integration_call(
            "resend",
            "send_email",
            response.is_success,
            (time.perf_counter() - started) * 1000,
            status_code=response.status_code,
        )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            error = data.get("message") if isinstance(data, dict) else None
            raise EmailSendError(error or "Resend rejected the message", status_code=response.status_code)

        return data.get("id") if isinstance(data, dict) else None
