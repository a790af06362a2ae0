# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Email Trigger helpers

Inbound address generation, provider payload parsing (Mailgun and a
generic fallback) and Mailgun webhook signature verification.
"""

import hashlib
import hmac
import re
import secrets
from email.parser import HeaderParser
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from hookflow.triggers.payloads import utc_now_iso

_ADDRESS_TOKEN = re.compile(r"^trigger-([a-f0-9]+)@", re.IGNORECASE)
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class EmailAttachment(BaseModel):
    filename: str
    content_type: str = Field(default="application/octet-stream", alias="contentType")
    size: int = 0

    model_config = ConfigDict(populate_by_name=True)


class ParsedEmail(BaseModel):
    """Provider-independent view of an inbound email."""
    sender: str = Field(default="", alias="from")
    to: str = ""
    subject: str = ""
    text: Optional[str] = None
    html: Optional[str] = None
    attachments: Optional[List[EmailAttachment]] = None
    headers: Optional[Dict[str, str]] = None
    timestamp: str = Field(default_factory=utc_now_iso)

    model_config = ConfigDict(populate_by_name=True)


def generate_email_address(domain: Optional[str] = None) -> str:
    """Unique inbound address in the form trigger-<24 hex>@<domain>."""
    if not domain:
        from hookflow.core.config import get_config
        domain = get_config().inbound_email_domain
    return f"trigger-{secrets.token_hex(12)}@{domain}"


def extract_token_from_address(address: str) -> Optional[str]:
    match = _ADDRESS_TOKEN.match(address or "")
    return match.group(1) if match else None


def is_valid_email_address(address: str) -> bool:
    return bool(_EMAIL.match(address or ""))


def verify_mailgun_signature(api_key: str, timestamp: str, token: str, signature: str) -> bool:
    """
    Verify a Mailgun webhook signature.

    Mailgun signs timestamp + token with HMAC SHA-256 keyed by the API key.
    Returns False on any malformed input instead of raising.
    """
    if not all(isinstance(v, str) and v for v in (api_key, timestamp, token, signature)):
        return False

    expected = hmac.new(
        api_key.encode(),
        msg=(timestamp + token).encode(),
        digestmod=hashlib.sha256
    ).hexdigest()

    if len(signature) != len(expected):
        return False
    return hmac.compare_digest(signature.encode(), expected.encode())


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return ""


def _first(body: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = _to_str(body.get(key))
        if value:
            return value
    return ""


def _optional(body: Mapping[str, Any], *keys: str) -> Optional[str]:
    return _first(body, *keys) or None


def parse_header_block(raw: str) -> Dict[str, str]:
    """Parse an RFC 822 header block (folded lines allowed) into a dict."""
    if not raw:
        return {}
    message = HeaderParser().parsestr(raw)
    return {key: " ".join(str(value).split()) for key, value in message.items()}


def _mailgun_attachments(body: Mapping[str, Any]) -> Optional[List[EmailAttachment]]:
    try:
        count = int(body.get("attachment-count") or 0)
    except (TypeError, ValueError):
        return None

    attachments = []
    for i in range(1, count + 1):
        item = body.get(f"attachment-{i}")
        if isinstance(item, Mapping):
            attachments.append(EmailAttachment(
                filename=_to_str(item.get("filename")) or f"attachment-{i}",
                content_type=_to_str(item.get("content-type")) or "application/octet-stream",
                size=int(item.get("size") or 0),
            ))
    return attachments or None


def _mailgun_headers(message_headers: Any) -> Optional[Dict[str, str]]:
    if not isinstance(message_headers, list):
        return None
    headers = {
        str(pair[0]): str(pair[1])
        for pair in message_headers
        if isinstance(pair, (list, tuple)) and len(pair) >= 2
    }
    return headers or None


def parse_mailgun_payload(body: Mapping[str, Any]) -> ParsedEmail:
    """Parse a Mailgun inbound-route webhook body."""
    return ParsedEmail(
        sender=_first(body, "sender", "from"),
        to=_first(body, "recipient", "To"),
        subject=_first(body, "subject", "Subject"),
        text=_optional(body, "body-plain"),
        html=_optional(body, "body-html"),
        attachments=_mailgun_attachments(body),
        headers=_mailgun_headers(body.get("message-headers")),
    )


def parse_generic_payload(body: Mapping[str, Any]) -> ParsedEmail:
    """Best-effort parse of an unknown provider's inbound email body."""
    raw_headers = body.get("headers")
    headers = parse_header_block(raw_headers) if isinstance(raw_headers, str) else {}
    return ParsedEmail(
        sender=_first(body, "from", "sender", "From", "Sender"),
        to=_first(body, "to", "recipient", "To", "Recipient"),
        subject=_first(body, "subject", "Subject"),
        text=_optional(body, "text", "body-plain"),
        html=_optional(body, "html", "body-html"),
        headers=headers or None,
    )


def build_email_trigger_data(email: ParsedEmail) -> Dict[str, Any]:
    """Payload seeded under the "trigger" context key for an inbound email."""
    return {
        "type": "email",
        "email": email.model_dump(by_alias=True, exclude_none=True),
        "timestamp": email.timestamp,
    }
