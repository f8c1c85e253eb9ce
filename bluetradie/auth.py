import base64
import json
import logging
import time
from typing import Optional

import httpx
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.x509 import load_pem_x509_certificate
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import FIREBASE_PROJECT_ID

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is a 401 from us, not a 403 from FastAPI
security = HTTPBearer(auto_error=False)

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)

# Cache for Google's public keys
_cached_keys = None


async def get_google_public_keys():
    """Fetch Google's public keys for Firebase token verification"""
    global _cached_keys
    if _cached_keys:
        logger.debug("✅ Using cached Google public keys")
        return _cached_keys

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(GOOGLE_CERTS_URL)
            if response.status_code == 200:
                _cached_keys = response.json()
                logger.info(f"✅ Fetched {len(_cached_keys)} Google public keys")
                return _cached_keys
            logger.error(f"❌ Failed to fetch Google public keys: HTTP {response.status_code}")
    except httpx.HTTPError as e:
        logger.error(f"❌ Error fetching Google public keys: {str(e)}")
    return None


def _b64decode(segment: str) -> bytes:
    pad = 4 - len(segment) % 4
    return base64.urlsafe_b64decode(segment + ("=" * pad if pad != 4 else ""))


async def verify_firebase_token(token: str) -> dict:
    """
    Verify Firebase ID token with full cryptographic signature verification.
    Uses Google's public keys to verify the RS256 JWT signature, then checks
    audience, issuer, expiry and issued-at claims.
    """
    global _cached_keys

    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Authentication not configured")

    try:
        parts = token.split(".")
        if len(parts) != 3:
            raise HTTPException(status_code=401, detail="Invalid token format")

        header_b64, payload_b64, signature_b64 = parts

        try:
            header = json.loads(_b64decode(header_b64))
        except (ValueError, json.JSONDecodeError) as e:
            logger.error(f"❌ Failed to decode token header: {str(e)}")
            raise HTTPException(status_code=401, detail="Invalid token header") from e

        kid = header.get("kid")
        alg = header.get("alg")

        if alg != "RS256":
            logger.error(f"❌ Invalid token algorithm: {alg}")
            raise HTTPException(status_code=401, detail="Invalid token algorithm")

        if not kid:
            raise HTTPException(status_code=401, detail="Token missing key ID")

        public_keys = await get_google_public_keys()
        if not public_keys or kid not in public_keys:
            logger.warning(f"⚠️ Key ID {kid} not found in public keys, invalidating cache and retrying")
            _cached_keys = None
            public_keys = await get_google_public_keys()
            if not public_keys or kid not in public_keys:
                logger.error(f"❌ Key ID {kid} not found in public keys after retry")
                raise HTTPException(status_code=401, detail="Unable to verify token signature")

        cert = load_pem_x509_certificate(public_keys[kid].encode(), default_backend())
        public_key = cert.public_key()

        try:
            signature = _b64decode(signature_b64)
            message = f"{header_b64}.{payload_b64}".encode()
            public_key.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
        except Exception as e:
            logger.error(f"❌ Token signature verification failed: {str(e)}")
            raise HTTPException(status_code=401, detail="Invalid token signature") from e

        decoded_payload = json.loads(_b64decode(payload_b64))

        if decoded_payload.get("aud") != FIREBASE_PROJECT_ID:
            logger.error("❌ Token audience mismatch")
            raise HTTPException(status_code=401, detail="Invalid token audience")

        expected_issuer = f"https://securetoken.google.com/{FIREBASE_PROJECT_ID}"
        if decoded_payload.get("iss") != expected_issuer:
            logger.error("❌ Token issuer mismatch")
            raise HTTPException(status_code=401, detail="Invalid token issuer")

        now = time.time()
        if decoded_payload.get("exp", 0) < now:
            raise HTTPException(
                status_code=401,
                detail="Token has expired. Please refresh your session.",
                headers={"X-Token-Expired": "true"},
            )

        # Allow 60 seconds clock skew
        if decoded_payload.get("iat", 0) > now + 60:
            logger.warning("⚠️ Token issued in the future")
            raise HTTPException(status_code=401, detail="Invalid token")

        return decoded_payload

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Token verification failed: {type(e).__name__}: {str(e)}")
        raise HTTPException(status_code=401, detail="Token verification failed") from e


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Resolve the caller's user id from a verified Firebase token"""
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    decoded_token = await verify_firebase_token(credentials.credentials)

    # Firebase ID tokens use 'sub' as the user ID claim
    user_id = decoded_token.get("sub") or decoded_token.get("user_id")
    if not user_id:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(decoded_token.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    logger.debug(f"✅ User authenticated: {user_id}")
    return user_id
