"""
SifaPass Billing - Security Utilities

JWT token helpers and webhook signature verification.
"""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from sifapass.config import settings


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary containing token payload (``sub`` is the admin id)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.access_token_expire_minutes
        )

    to_encode.update({"exp": expire, "type": "access"})

    encoded_jwt = jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )

    return encoded_jwt


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and verify a JWT token.

    Returns:
        Token payload dict or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm]
        )
        return payload
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[dict]:
    """Verify an access token and return payload, or None if invalid."""
    payload = decode_token(token)
    if payload and payload.get("type") == "access":
        return payload
    return None


def verify_paystack_signature(payload: bytes, signature: str, secret: str) -> bool:
    """
    Verify Paystack webhook signature.

    Paystack signs the raw request body with HMAC-SHA512 keyed by the
    account secret key and sends the hex digest in X-Paystack-Signature.

    Args:
        payload: Raw request body bytes, exactly as received
        signature: X-Paystack-Signature header value
        secret: Paystack secret key

    Returns:
        True if signature is valid
    """
    if not signature or not secret:
        return False

    expected = hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha512
    ).hexdigest()

    # Header values may carry arbitrary latin-1 text; compare as bytes
    return hmac.compare_digest(
        expected.encode("ascii"),
        signature.encode("utf-8", "replace"),
    )
