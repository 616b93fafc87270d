"""
Email-verified access to a visitor's own bookings.

A six-digit code is mailed to the booking email; exchanging it returns the
upcoming bookings plus a session token for reschedule/cancel. Responses to
the send step are identical whether or not the email has bookings.
"""

import secrets
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from app.auth.verify import issue_session_token
from app.config import settings
from app.db.helpers import execute_query, fetch_one, fetch_val
from app.infrastructure.observability.logging import get_logger
from app.models.domain.scheduling_domain import Booking
from app.services.email.resend_client import EmailSendError, ResendEmailSender, verification_email_html
from app.services.scheduling.booking_repository import BookingRepository
from app.services.scheduling.errors import BookingUnavailableError, BookingValidationError

logger = get_logger(__name__)

CODE_DIGITS = 6
EMAIL_SUBJECT = "Your booking verification code"


def generate_code() -> str:
    return f"{secrets.randbelow(10**CODE_DIGITS):0{CODE_DIGITS}d}"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class VerificationCodeStore:
    """verification_codes table access."""

    async def count_recent(self, email: str, window_minutes: int = 60) -> int:
        count = await fetch_val(
            """
            SELECT COUNT(*) FROM verification_codes
            WHERE email = %s AND created_at >= NOW() - make_interval(mins => %s)
            """,
            (email, window_minutes),
        )
        return int(count or 0)

    async def create(self, email: str, code: str, ttl_minutes: int) -> None:
        await execute_query(
            """
            INSERT INTO verification_codes (id, email, code, expires_at, created_at)
            VALUES (%s, %s, %s, NOW() + make_interval(mins => %s), NOW())
            """,
            (str(uuid.uuid4()), email, code, ttl_minutes),
        )

    async def consume(self, email: str, code: str) -> bool:
        """Mark a live, unused code as used. Single statement, so a code works once."""
        row = await fetch_one(
            """
            UPDATE verification_codes SET used_at = NOW()
            WHERE id = (
                SELECT id FROM verification_codes
                WHERE email = %s AND code = %s AND used_at IS NULL AND expires_at > NOW()
                ORDER BY created_at DESC
                LIMIT 1
            ) AND used_at IS NULL
            RETURNING id
            """,
            (email, code),
        )
        return row is not None


class ManageAccessService:
    def __init__(
        self,
        codes: VerificationCodeStore,
        bookings: BookingRepository,
        email_sender: ResendEmailSender | None,
        now: Callable[[], datetime] | None = None,
    ):
        self.codes = codes
        self.bookings = bookings
        self.email_sender = email_sender
        self._now = now or (lambda: datetime.now(UTC))

    async def send_code(self, email: str) -> None:
        """
        Mail a verification code when the email has upcoming bookings.

        Returns silently in every other case so callers cannot probe which
        emails have bookings.

        Raises:
            BookingUnavailableError: If no email sender is configured
        """
        if self.email_sender is None:
            raise BookingUnavailableError("Email sender not configured")

        email = normalize_email(email)
        upcoming = await self.bookings.list_upcoming_for_email(email, self._now().date())
        if not upcoming:
            logger.info("Verification code skipped, no upcoming bookings")
            return

        recent = await self.codes.count_recent(email)
        if recent >= settings.VERIFICATION_CODES_PER_HOUR:
            logger.warning("Verification code rate limit reached", recent_codes=recent)
            return

        code = generate_code()
        ttl = settings.VERIFICATION_CODE_TTL_MINUTES
        await self.codes.create(email, code, ttl)

        try:
            message_id = await self.email_sender.send(email, EMAIL_SUBJECT, verification_email_html(code, ttl))
        except EmailSendError as e:
            logger.error("Verification email failed", error=str(e), status_code=e.status_code)
            return

        logger.info("Verification code sent", message_id=message_id, booking_count=len(upcoming))

    async def verify_code(self, email: str, code: str) -> tuple[str, list[Booking]]:
        """
        Exchange a code for a session token and the email's upcoming bookings.

        Raises:
            BookingValidationError: If the code is wrong, expired or already used
        """
        if not settings.MANAGE_SESSION_SECRET:
            raise BookingUnavailableError("Manage session secret not configured")

        email = normalize_email(email)
        if not await self.codes.consume(email, code.strip()):
            logger.info("Verification code rejected")
            raise BookingValidationError("Invalid or expired code")

        upcoming = await self.bookings.list_upcoming_for_email(email, self._now().date())
        logger.info("Verification code accepted", booking_count=len(upcoming))
        return issue_session_token(email), upcoming
