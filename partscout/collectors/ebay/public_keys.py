"""
eBay Notification API public keys, used to verify pushed notifications.
https://developer.ebay.com/api-docs/commerce/notification/resources/public_key/methods/getPublicKey
"""
import base64
import binascii
import re
import time
from typing import Callable, Optional

import httpx
import structlog

from partscout.collectors.ebay.auth import CredentialCache

logger = structlog.get_logger()

PEM_PATTERN = re.compile(
    r"-----BEGIN PUBLIC KEY-----(?P<body>.*?)-----END PUBLIC KEY-----",
    re.DOTALL,
)


class PublicKeyError(Exception):
    """Public key could not be fetched or decoded."""
    def __init__(self, message: str, code: str = None, status_code: int = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


def _wrap_pem(body: str) -> str:
    body = re.sub(r"\s+", "", body)
    lines = [body[i:i + 64] for i in range(0, len(body), 64)]
    return "-----BEGIN PUBLIC KEY-----\n" + "\n".join(lines) + "\n-----END PUBLIC KEY-----\n"


def to_pem(key: str) -> str:
    """
    Normalize the ``key`` field of a getPublicKey response to PEM.

    eBay returns the PEM on a single line; some responses carry it
    base64-encoded, or only the base64 DER body.
    """
    match = PEM_PATTERN.search(key)
    if match:
        return _wrap_pem(match.group("body"))

    try:
        decoded = base64.b64decode(key, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        decoded = None

    if decoded and PEM_PATTERN.search(decoded):
        return to_pem(decoded)
    if not key.strip():
        raise PublicKeyError("Empty public key", code="BAD_KEY")
    return _wrap_pem(key)


class PublicKeyCache:
    """Caches notification public keys per key id for ``ttl`` seconds."""

    KEY_PATH = "/commerce/notification/v1/public_key/{kid}"

    def __init__(
        self,
        credentials: CredentialCache,
        ttl: float = 3600,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = 20.0,
    ):
        self.credentials = credentials
        self.ttl = ttl
        self._clock = clock
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None
        self._keys: dict[str, tuple[str, float]] = {}

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._http_client

    async def close(self):
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def get(self, kid: str) -> str:
        """
        Return the PEM public key for ``kid``.

        Raises:
            AuthError: token exchange failed
            PublicKeyError: key request failed or returned no key
        """
        cached = self._keys.get(kid)
        if cached and self._clock() < cached[1]:
            return cached[0]

        token = await self.credentials.get_token()
        client = await self._get_http_client()
        url = f"{self.credentials.base_url}{self.KEY_PATH.format(kid=kid)}"

        try:
            response = await client.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            raise PublicKeyError(f"Public key request failed: {e}", code="NETWORK_ERROR") from e

        if response.status_code != 200:
            raise PublicKeyError(
                f"Public key request returned status {response.status_code}",
                code="API_ERROR",
                status_code=response.status_code
            )

        try:
            key = response.json()["key"]
        except (ValueError, KeyError, TypeError) as e:
            raise PublicKeyError("Malformed public key response", code="PARSE_ERROR") from e

        pem = to_pem(str(key))
        self._keys[kid] = (pem, self._clock() + self.ttl)
        logger.info("eBay notification public key cached", kid=kid)
        return pem
