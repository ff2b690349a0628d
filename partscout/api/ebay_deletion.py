"""
eBay Marketplace Account Deletion notification endpoint.

GET answers eBay's endpoint-validation challenge; POST receives signed
deletion notifications.
https://developer.ebay.com/marketplace-account-deletion
"""
import base64
import binascii
import hashlib
import json
from typing import Optional

import structlog
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import load_pem_public_key
from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from partscout.api.dependencies import get_public_key_cache
from partscout.collectors.ebay.auth import AuthError
from partscout.collectors.ebay.public_keys import PublicKeyCache, PublicKeyError
from partscout.core.config import Settings, get_settings

logger = structlog.get_logger()

router = APIRouter(prefix="/api/ebay-deletion", tags=["ebay"])


def challenge_response(challenge_code: str, verification_token: str, endpoint: str) -> str:
    """SHA-256 hex of challengeCode + verificationToken + endpoint."""
    digest = hashlib.sha256()
    digest.update(challenge_code.encode("utf-8"))
    digest.update(verification_token.encode("utf-8"))
    digest.update(endpoint.encode("utf-8"))
    return digest.hexdigest()


def decode_signature_header(header: str) -> tuple[str, bytes]:
    """
    Decode ``X-EBAY-SIGNATURE`` (base64 JSON with ``kid`` and ``signature``).

    Raises:
        ValueError: header is not in the expected format
    """
    try:
        data = json.loads(base64.b64decode(header).decode("utf-8"))
        kid = data["kid"]
        signature = base64.b64decode(data["signature"])
    except (binascii.Error, UnicodeDecodeError, KeyError, TypeError, ValueError) as e:
        raise ValueError("Malformed signature header") from e
    if not kid or not signature:
        raise ValueError("Malformed signature header")
    return str(kid), signature


def verify_signature(public_key_pem: str, signature: bytes, body: bytes) -> bool:
    """Verify an ECDSA/SHA-1 signature over the raw request body."""
    public_key = load_pem_public_key(public_key_pem.encode("utf-8"))
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise UnsupportedAlgorithm("Notification key is not an EC key")
    try:
        public_key.verify(signature, body, ec.ECDSA(hashes.SHA1()))
    except InvalidSignature:
        return False
    return True


@router.get("")
async def validate_endpoint(
    challenge_code: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
):
    """Answer eBay's endpoint challenge."""
    if not challenge_code:
        return JSONResponse(status_code=400, content={"error": "Missing challenge_code"})

    if not settings.ebay_verification_token or not settings.ebay_deletion_endpoint:
        logger.error("Missing EBAY_VERIFICATION_TOKEN or EBAY_DELETION_ENDPOINT")
        return JSONResponse(status_code=500, content={"error": "Server misconfigured"})

    return {
        "challengeResponse": challenge_response(
            challenge_code,
            settings.ebay_verification_token,
            settings.ebay_deletion_endpoint,
        )
    }


@router.post("")
async def receive_notification(
    request: Request,
    x_ebay_signature: Optional[str] = Header(None),
    key_cache: PublicKeyCache = Depends(get_public_key_cache),
):
    """Verify and acknowledge an account deletion notification."""
    if not x_ebay_signature:
        return JSONResponse(status_code=412, content={"error": "Missing signature header"})

    body = await request.body()

    try:
        kid, signature = decode_signature_header(x_ebay_signature)
    except ValueError:
        return JSONResponse(status_code=412, content={"error": "Signature verification failed"})

    try:
        public_key = await key_cache.get(kid)
        valid = verify_signature(public_key, signature, body)
    except (AuthError, PublicKeyError) as e:
        logger.error("Could not obtain eBay public key", kid=kid, error=e.message)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
    except (ValueError, UnsupportedAlgorithm) as e:
        logger.error("Could not load eBay public key", kid=kid, error=str(e))
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    if not valid:
        logger.warning("eBay notification signature verification failed", kid=kid)
        return JSONResponse(status_code=412, content={"error": "Signature verification failed"})

    try:
        payload = json.loads(body)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

    notification = payload.get("notification") if isinstance(payload, dict) else None
    if not isinstance(notification, dict):
        notification = {}
    data = notification.get("data") if isinstance(notification.get("data"), dict) else {}
    # No seller data is stored per eBay user, so acknowledging is sufficient
    logger.info(
        "eBay account deletion notification received",
        notification_id=notification.get("notificationId"),
        user_id=data.get("userId"),
        username=data.get("username"),
        event_date=notification.get("eventDate"),
    )
    return {"status": "acknowledged"}
