# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Trigger payload normalization.

Every trigger type hands the engine the same shape:
{body, headers, query, method, timestamp}. Credential-bearing headers are
redacted before the payload is stored, logged or templated.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

SENSITIVE_HEADERS = frozenset([
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
])

# Node configuration keys holding credentials (compared case-insensitively)
SENSITIVE_FIELDS = frozenset([
    "apikey",
    "bottoken",
    "token",
    "password",
    "secret",
    "connectionstring",
])

REDACTED = "[REDACTED]"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def redact_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Copy headers with sensitive values replaced by "[REDACTED]"."""
    if not headers:
        return {}
    return {
        key: REDACTED if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def redact_config(value: Any) -> Any:
    """
    Copy a resolved node configuration for the step log.

    Credential fields and sensitive headers are replaced by "[REDACTED]" at
    any depth, so nested auth blocks and header maps are covered.
    """
    if isinstance(value, Mapping):
        redacted = {}
        for key, item in value.items():
            lowered = str(key).lower()
            if lowered in SENSITIVE_FIELDS or lowered in SENSITIVE_HEADERS:
                redacted[key] = REDACTED
            else:
                redacted[key] = redact_config(item)
        return redacted
    if isinstance(value, list):
        return [redact_config(item) for item in value]
    return value


def build_trigger_data(
    body: Any = None,
    headers: Optional[Mapping[str, Any]] = None,
    query: Optional[Mapping[str, Any]] = None,
    method: str = "POST",
    timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the normalized payload stored under the "trigger" context key.

    Args:
        body: Parsed request body
        headers: Request headers (redacted here)
        query: Query string parameters
        method: HTTP method of the inbound request
        timestamp: ISO timestamp; defaults to now (UTC)

    Returns:
        Normalized trigger payload
    """
    return {
        "body": body if body is not None else {},
        "headers": redact_headers(headers),
        "query": dict(query or {}),
        "method": (method or "POST").upper(),
        "timestamp": timestamp or utc_now_iso(),
    }
