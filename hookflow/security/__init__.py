# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""Outbound request safety checks."""

from hookflow.security.url_validator import (
    UrlValidationResult,
    validate_url,
    is_private_ip,
    is_blocked_hostname,
)

__all__ = [
    "UrlValidationResult",
    "validate_url",
    "is_private_ip",
    "is_blocked_hostname",
]
