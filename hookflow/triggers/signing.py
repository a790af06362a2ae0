# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Webhook Trigger Identity & Signing

Token/secret generation for webhook triggers, HMAC SHA-256 signing of
payloads and verification of inbound `sha256=<hex>` signature headers.
"""

import base64
import hashlib
import hmac
import re
import secrets
from typing import Optional, Union

SIGNATURE_PREFIX = "sha256="
TOKEN_BYTES = 24
SECRET_BYTES = 32

_TOKEN_ALPHABET = re.compile(r"^[A-Za-z0-9_-]+$")
_WEBHOOK_PATH = re.compile(r"/webhooks/([A-Za-z0-9_-]+)/?$")


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def generate_token() -> str:
    """
    Generate a URL-safe webhook token.

    24 random bytes, base64url encoded without padding, always 32 characters.
    """
    raw = secrets.token_bytes(TOKEN_BYTES)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_secret() -> str:
    """Generate a 64 character hex HMAC key."""
    return secrets.token_hex(SECRET_BYTES)


def sign(payload: Union[str, bytes], secret: Union[str, bytes]) -> str:
    """
    Sign a payload with HMAC SHA-256.

    Args:
        payload: Raw request body
        secret: Trigger secret

    Returns:
        Signature header value in the form "sha256=<hex>"
    """
    mac = hmac.new(
        _to_bytes(secret),
        msg=_to_bytes(payload),
        digestmod=hashlib.sha256
    )
    return f"{SIGNATURE_PREFIX}{mac.hexdigest()}"


def verify(payload: Union[str, bytes], signature: Optional[str], secret: Union[str, bytes]) -> bool:
    """
    Verify an inbound signature header against the payload.

    Never raises: missing, malformed or wrong-length signatures return False.

    Args:
        payload: Raw request body bytes
        signature: Signature header value ("sha256=<hex>")
        secret: Trigger secret

    Returns:
        True if signature is valid
    """
    if not signature or not isinstance(signature, str):
        return False

    try:
        expected = sign(payload, secret)
    except (TypeError, AttributeError):
        return False

    if len(signature) != len(expected):
        return False

    # Constant-time comparison to prevent timing attacks
    return hmac.compare_digest(_to_bytes(signature), _to_bytes(expected))


def extract_token(url: str) -> Optional[str]:
    """Return the token from a `.../webhooks/<token>` URL, or None."""
    if not url:
        return None
    path = url.split("?", 1)[0].split("#", 1)[0]
    match = _WEBHOOK_PATH.search(path)
    return match.group(1) if match else None


def is_valid_token(token: Optional[str]) -> bool:
    """Token must be at least 16 characters from the base64url alphabet."""
    if not token or len(token) < 16:
        return False
    return bool(_TOKEN_ALPHABET.match(token))


def build_webhook_url(token: str, base_url: Optional[str] = None) -> str:
    """Public URL a sender posts to for the given token."""
    if base_url is None:
        from hookflow.core.config import get_config
        base_url = get_config().webhook_base_url
    return f"{base_url.rstrip('/')}/webhooks/{token}"
