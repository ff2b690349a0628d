"""
Tests for the eBay marketplace account deletion endpoint and key cache.
"""
import base64
import hashlib
import json

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi import FastAPI
from fastapi.testclient import TestClient

from partscout.api.dependencies import get_public_key_cache
from partscout.api.ebay_deletion import challenge_response, decode_signature_header
from partscout.api.ebay_deletion import router as ebay_deletion_router
from partscout.collectors.ebay.public_keys import PublicKeyCache, PublicKeyError, to_pem
from partscout.core.config import Settings, get_settings

NOTIFICATION = {
    "metadata": {"topic": "MARKETPLACE_ACCOUNT_DELETION", "schemaVersion": "1.0"},
    "notification": {
        "notificationId": "49feeaeb-4982-42d9-a377-9645b8479411_33f7e043",
        "eventDate": "2024-03-01T20:43:59.354Z",
        "publishDate": "2024-03-01T20:43:59.679Z",
        "publishAttemptCount": 1,
        "data": {"username": "test_user", "userId": "ma8vp1jySJC", "eiasToken": "nY+sHZ2PrBmdj6wVnY"},
    },
}


@pytest.fixture(scope="module")
def private_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="module")
def public_pem(private_key):
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


def sign(private_key, body: bytes, kid: str = "kid-1") -> str:
    signature = private_key.sign(body, ec.ECDSA(hashes.SHA1()))
    header = {
        "alg": "ECDSA",
        "kid": kid,
        "signature": base64.b64encode(signature).decode(),
        "digest": "SHA1",
    }
    return base64.b64encode(json.dumps(header).encode()).decode()


class StubKeyCache:

    def __init__(self, pem=None, error=None):
        self.pem = pem
        self.error = error
        self.requested = []

    async def get(self, kid):
        self.requested.append(kid)
        if self.error is not None:
            raise self.error
        return self.pem


@pytest.fixture
def key_cache(public_pem):
    return StubKeyCache(pem=public_pem)


@pytest.fixture
def client(key_cache):
    app = FastAPI()
    app.include_router(ebay_deletion_router)
    app.dependency_overrides[get_public_key_cache] = lambda: key_cache
    app.dependency_overrides[get_settings] = lambda: Settings(
        ebay_verification_token="verification-token-0123456789abcdef",
        ebay_deletion_endpoint="https://partscout.example.com/api/ebay-deletion",
    )
    return TestClient(app)


class TestChallenge:

    def test_challenge_response(self):
        expected = hashlib.sha256(b"abc" + b"token" + b"https://host/ep").hexdigest()

        assert challenge_response("abc", "token", "https://host/ep") == expected

    def test_challenge_endpoint(self, client):
        response = client.get("/api/ebay-deletion", params={"challenge_code": "a8628072-3d33"})

        assert response.status_code == 200
        assert response.json() == {
            "challengeResponse": challenge_response(
                "a8628072-3d33",
                "verification-token-0123456789abcdef",
                "https://partscout.example.com/api/ebay-deletion",
            )
        }

    def test_missing_challenge_code(self, client):
        response = client.get("/api/ebay-deletion")

        assert response.status_code == 400

    def test_not_configured(self, client):
        client.app.dependency_overrides[get_settings] = lambda: Settings(
            ebay_verification_token="",
            ebay_deletion_endpoint="",
        )

        response = client.get("/api/ebay-deletion", params={"challenge_code": "abc"})

        assert response.status_code == 500


class TestNotification:
    """Signed notification handling."""

    def test_valid_signature_acknowledged(self, client, private_key, key_cache):
        body = json.dumps(NOTIFICATION).encode()

        response = client.post(
            "/api/ebay-deletion",
            content=body,
            headers={"X-EBAY-SIGNATURE": sign(private_key, body), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "acknowledged"}
        assert key_cache.requested == ["kid-1"]

    def test_missing_signature(self, client):
        response = client.post("/api/ebay-deletion", json=NOTIFICATION)

        assert response.status_code == 412

    def test_malformed_signature_header(self, client):
        response = client.post(
            "/api/ebay-deletion",
            json=NOTIFICATION,
            headers={"X-EBAY-SIGNATURE": "not-base64-json"},
        )

        assert response.status_code == 412

    def test_tampered_body_rejected(self, client, private_key):
        body = json.dumps(NOTIFICATION).encode()
        header = sign(private_key, body)
        tampered = body.replace(b"test_user", b"other_user")

        response = client.post(
            "/api/ebay-deletion",
            content=tampered,
            headers={"X-EBAY-SIGNATURE": header, "Content-Type": "application/json"},
        )

        assert response.status_code == 412

    def test_key_fetch_failure(self, client, private_key, key_cache):
        key_cache.error = PublicKeyError("Public key request returned status 404", code="API_ERROR")
        body = json.dumps(NOTIFICATION).encode()

        response = client.post(
            "/api/ebay-deletion",
            content=body,
            headers={"X-EBAY-SIGNATURE": sign(private_key, body)},
        )

        assert response.status_code == 500

    def test_decode_signature_header(self, private_key):
        kid, signature = decode_signature_header(sign(private_key, b"{}", kid="abc"))

        assert kid == "abc"
        assert len(signature) > 0

        with pytest.raises(ValueError):
            decode_signature_header(base64.b64encode(b'{"kid": "abc"}').decode())


class TestPublicKeyCache:

    class StubCredentials:
        base_url = "https://api.ebay.com"

        async def get_token(self):
            return "app-token"

    def test_to_pem_single_line(self, public_pem):
        body = "".join(public_pem.strip().splitlines()[1:-1])
        single_line = f"-----BEGIN PUBLIC KEY-----{body}-----END PUBLIC KEY-----"

        assert to_pem(single_line) == public_pem

    def test_to_pem_bare_body(self, public_pem):
        body = "".join(public_pem.strip().splitlines()[1:-1])

        assert to_pem(body) == public_pem

    @pytest.mark.asyncio
    async def test_keys_cached_per_kid(self, public_pem):
        requests = []
        single_line = public_pem.replace("\n", "")

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"key": single_line, "algorithm": "ECDSA", "digest": "SHA1"})

        now = [0.0]
        cache = PublicKeyCache(
            self.StubCredentials(),
            ttl=3600,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            clock=lambda: now[0],
        )

        assert await cache.get("kid-1") == public_pem
        assert await cache.get("kid-1") == public_pem
        assert len(requests) == 1
        assert requests[0].url.path == "/commerce/notification/v1/public_key/kid-1"
        assert requests[0].headers["Authorization"] == "Bearer app-token"

        now[0] = 3600.0
        await cache.get("kid-1")
        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_key_request_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"errors": []})

        cache = PublicKeyCache(
            self.StubCredentials(),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        with pytest.raises(PublicKeyError) as exc_info:
            await cache.get("missing")
        assert exc_info.value.status_code == 404
