"""
Service-account token provider for Google APIs.

Signs an RS256 assertion as the service account, impersonating the host
mailbox (domain-wide delegation), and exchanges it for a short-lived bearer
token. The token and its expiry are owned by the provider instance and
reused until shortly before expiry.
"""

import asyncio
import json
import time

import httpx
import jwt

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600
EXPIRY_MARGIN_SECONDS = 60
TOKEN_REQUEST_TIMEOUT = 15


class ServiceAccountAuthError(Exception):
    """Raised when credentials are unusable or the token exchange fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ServiceAccountCredentials:
    """The fields of a Google service-account key file that signing needs."""

    def __init__(self, data: dict):
        try:
            self.client_email = data["client_email"]
            self.private_key = data["private_key"]
        except KeyError as e:
            raise ServiceAccountAuthError(f"Service account key is missing {e.args[0]}") from e
        self.private_key_id = data.get("private_key_id")
        self.token_uri = data.get("token_uri") or DEFAULT_TOKEN_URI

    @classmethod
    def from_json(cls, raw: str) -> "ServiceAccountCredentials":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ServiceAccountAuthError("Service account key is not valid JSON") from e
        if not isinstance(data, dict):
            raise ServiceAccountAuthError("Service account key must be a JSON object")
        return cls(data)


class ServiceAccountTokenProvider:
    """Lazily refreshed bearer token for one (service account, subject) pair."""

    def __init__(
        self,
        credentials: ServiceAccountCredentials,
        subject: str,
        scope: str = CALENDAR_SCOPE,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.credentials = credentials
        self.subject = subject
        self.scope = scope
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(TOKEN_REQUEST_TIMEOUT))
        self._access_token: str | None = None
        self._expires_at: float = 0.0
        self._refresh_lock = asyncio.Lock()

    def _token_valid(self) -> bool:
        return bool(self._access_token) and time.time() < self._expires_at - EXPIRY_MARGIN_SECONDS

    def build_assertion(self, now: int | None = None) -> str:
        """Signed JWT claim set for the token endpoint."""
        issued_at = int(now if now is not None else time.time())
        claims = {
            "iss": self.credentials.client_email,
            "sub": self.subject,
            "scope": self.scope,
            "aud": self.credentials.token_uri,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        }
        headers = {"kid": self.credentials.private_key_id} if self.credentials.private_key_id else None
        try:
            return jwt.encode(claims, self.credentials.private_key, algorithm="RS256", headers=headers)
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise ServiceAccountAuthError(f"Could not sign service account assertion: {e}") from e

    async def get_access_token(self) -> str:
        """Return a cached token or exchange a fresh assertion for one."""
        if self._token_valid():
            return self._access_token

        async with self._refresh_lock:
            if self._token_valid():
                return self._access_token
            await self._refresh()
            return self._access_token

    async def _refresh(self) -> None:
        assertion = self.build_assertion()
        try:
            response = await self._client.post(
                self.credentials.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as e:
            logger.error("Service account token request failed", error=str(e))
            raise ServiceAccountAuthError(f"Token request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success or "access_token" not in data:
            description = data.get("error_description") or data.get("error") or "unknown error"
            logger.error(
                "Service account token exchange rejected",
                status_code=response.status_code,
                error=description,
                subject=self.subject,
            )
            raise ServiceAccountAuthError(
                f"Token exchange failed: {description}", status_code=response.status_code
            )

        self._access_token = data["access_token"]
        self._expires_at = time.time() + int(data.get("expires_in", 3600))
        logger.info("Service account token refreshed", subject=self.subject, expires_in=data.get("expires_in"))

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-authenticates."""
        self._access_token = None
        self._expires_at = 0.0

    async def close(self) -> None:
        await self._client.aclose()
