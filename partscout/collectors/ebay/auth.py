"""
OAuth client-credentials token cache for the eBay REST APIs.
"""
import base64
import time
from typing import Callable, Optional

import httpx
import structlog

from partscout.core.config import Settings

logger = structlog.get_logger()


class AuthError(Exception):
    """Client-credentials exchange failed."""
    def __init__(self, message: str, code: str = None, status_code: int = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class CredentialCache:
    """
    Holds one application access token and refreshes it before expiry.

    The token is considered stale ``REFRESH_MARGIN_SECONDS`` before eBay's
    reported expiry. Concurrent callers that both find the cache empty will
    each perform an exchange; the last one to finish wins.
    https://developer.ebay.com/api-docs/static/oauth-client-credentials-grant.html
    """

    TOKEN_PATH = "/identity/v1/oauth2/token"
    SCOPE = "https://api.ebay.com/oauth/api_scope"
    REFRESH_MARGIN_SECONDS = 300
    DEFAULT_EXPIRES_IN = 7200

    def __init__(
        self,
        app_id: str,
        cert_id: str,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = 20.0,
    ):
        self.app_id = app_id
        self.cert_id = cert_id
        self.base_url = base_url.rstrip("/")
        self._clock = clock
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "CredentialCache":
        return cls(
            app_id=settings.ebay_app_id,
            cert_id=settings.ebay_cert_id,
            base_url=settings.ebay_base_url,
            http_client=http_client,
            timeout=settings.upstream_timeout_seconds,
        )

    @property
    def token_url(self) -> str:
        return f"{self.base_url}{self.TOKEN_PATH}"

    @property
    def expires_at(self) -> float:
        return self._expires_at

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._http_client

    async def close(self):
        """Close HTTP client if this cache created it."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def _get_basic_auth_header(self) -> str:
        """Generate Basic Auth header for OAuth."""
        credentials = f"{self.app_id}:{self.cert_id}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return f"Basic {encoded}"

    def invalidate(self) -> None:
        """Drop the cached token so the next call performs an exchange."""
        self._token = None
        self._expires_at = 0.0

    async def get_token(self) -> str:
        """Return a valid access token, exchanging credentials when needed."""
        if self._token and self._clock() < self._expires_at:
            return self._token

        token, expires_in = await self._exchange()
        self._token = token
        self._expires_at = self._clock() + expires_in - self.REFRESH_MARGIN_SECONDS
        logger.info("eBay access token refreshed", expires_in=expires_in)
        return token

    async def _exchange(self) -> tuple[str, int]:
        if not (self.app_id and self.cert_id):
            raise AuthError(
                "eBay API credentials not configured",
                code="AUTH_NOT_CONFIGURED"
            )

        client = await self._get_http_client()
        try:
            response = await client.post(
                self.token_url,
                headers={
                    "Authorization": self._get_basic_auth_header(),
                    "Content-Type": "application/x-www-form-urlencoded"
                },
                data={
                    "grant_type": "client_credentials",
                    "scope": self.SCOPE
                }
            )
        except httpx.HTTPError as e:
            raise AuthError(
                f"Token request failed: {e}",
                code="AUTH_NETWORK_ERROR"
            ) from e

        if response.status_code != 200:
            raise AuthError(
                f"Failed to get access token: {response.text[:200]}",
                code="AUTH_FAILED",
                status_code=response.status_code
            )

        try:
            data = response.json()
            token = data["access_token"]
            expires_in = int(data.get("expires_in", self.DEFAULT_EXPIRES_IN))
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError(
                "Malformed token response",
                code="AUTH_BAD_RESPONSE",
                status_code=response.status_code
            ) from e

        if not token:
            raise AuthError("Empty access token", code="AUTH_BAD_RESPONSE")

        return token, expires_in
