# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
URL Safety Validator

Checks outbound addresses against private-network, metadata-service and
port blocklists before any workflow node is allowed to make a network call.

Matching is lexical: hostnames are never resolved through DNS here.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit, unquote


ALLOWED_SCHEMES = ("http", "https")

# Loopback, RFC1918, link-local (cloud metadata) and IPv6 local ranges
BLOCKED_IP_PATTERNS = [
    re.compile(r"^127\.\d{1,3}\.\d{1,3}\.\d{1,3}$"),
    re.compile(r"^10\.\d{1,3}\.\d{1,3}\.\d{1,3}$"),
    re.compile(r"^172\.(1[6-9]|2\d|3[0-1])\.\d{1,3}\.\d{1,3}$"),
    re.compile(r"^192\.168\.\d{1,3}\.\d{1,3}$"),
    re.compile(r"^169\.254\.\d{1,3}\.\d{1,3}$"),
    re.compile(r"^0\.0\.0\.0$"),
    re.compile(r"^::1$"),
    re.compile(r"^0:0:0:0:0:0:0:1$"),
    re.compile(r"^fc[\da-f]{2}:", re.IGNORECASE),
    re.compile(r"^fd[\da-f]{2}:", re.IGNORECASE),
    re.compile(r"^fe80:", re.IGNORECASE),
]

BLOCKED_HOSTNAMES = frozenset([
    "localhost",
    "localhost.localdomain",
    "0.0.0.0",
    "metadata.google.internal",
    "metadata.goog",
    "kubernetes.default",
    "kubernetes.default.svc",
    "kubernetes.default.svc.cluster.local",
])

# SSH, SMTP, MySQL, Postgres, Redis, MongoDB, Elasticsearch, Memcached
BLOCKED_PORTS = frozenset([22, 25, 3306, 5432, 6379, 27017, 9200, 11211])

DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class UrlValidationResult:
    """Outcome of validate_url. `error` is set only when `valid` is False."""
    valid: bool
    hostname: Optional[str] = None
    port: Optional[int] = None
    error: Optional[str] = None


def _normalize_host(host: str) -> str:
    host = host.strip().lower()
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host


def is_private_ip(host: str) -> bool:
    """True if host lexically matches a loopback, private or link-local address."""
    host = _normalize_host(host)
    return any(pattern.match(host) for pattern in BLOCKED_IP_PATTERNS)


def is_blocked_hostname(host: str) -> bool:
    """True if host is on the fixed internal/metadata hostname list."""
    return _normalize_host(host) in BLOCKED_HOSTNAMES


def _check_host(host: str) -> Optional[str]:
    if is_blocked_hostname(host):
        return f"Access to {host} is not allowed for security reasons"
    if is_private_ip(host):
        return f"Access to private/internal IP addresses is not allowed: {host}"
    return None


def validate_url(url: str) -> UrlValidationResult:
    """
    Validate an outbound URL for SSRF safety.

    Checks run in order: format, scheme, hostname list, IP patterns, port,
    then the percent-decoded hostname is checked again.

    Args:
        url: Absolute URL a node is about to call

    Returns:
        UrlValidationResult with hostname and effective port on success
    """
    if not isinstance(url, str) or not url.strip():
        return UrlValidationResult(valid=False, error="Invalid URL format")

    try:
        parts = urlsplit(url.strip())
        scheme = parts.scheme.lower()
        hostname = parts.hostname
        explicit_port = parts.port
    except ValueError:
        return UrlValidationResult(valid=False, error="Invalid URL format")

    if not scheme:
        return UrlValidationResult(valid=False, error="Invalid URL format")

    if scheme not in ALLOWED_SCHEMES:
        return UrlValidationResult(
            valid=False,
            error=f"Protocol not allowed: {scheme}:. Only HTTP and HTTPS are supported."
        )

    if not hostname:
        return UrlValidationResult(valid=False, error="Invalid URL format")

    hostname = _normalize_host(hostname)

    error = _check_host(hostname)
    if error:
        return UrlValidationResult(valid=False, hostname=hostname, error=error)

    port = explicit_port if explicit_port is not None else DEFAULT_PORTS[scheme]
    if port not in (80, 443) and port in BLOCKED_PORTS:
        return UrlValidationResult(
            valid=False,
            hostname=hostname,
            port=port,
            error=f"Access to port {port} is not allowed for security reasons"
        )

    # Encoded hostnames (e.g. %31%32%37.0.0.1) get a second pass
    decoded = _normalize_host(unquote(hostname))
    if decoded != hostname:
        error = _check_host(decoded)
        if error:
            return UrlValidationResult(valid=False, hostname=hostname, port=port, error=error)

    return UrlValidationResult(valid=True, hostname=hostname, port=port)
