# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Trigger identity, signing and payload normalization.

Delivery (HTTP listener, mail receiver, cron daemon) is external; these are
the pure helpers it uses before handing a TriggerEvent to the engine.
"""

from hookflow.triggers.signing import (
    generate_token,
    generate_secret,
    sign,
    verify,
    extract_token,
    is_valid_token,
    build_webhook_url,
)
from hookflow.triggers.payloads import build_trigger_data, redact_config, redact_headers

__all__ = [
    "generate_token",
    "generate_secret",
    "sign",
    "verify",
    "extract_token",
    "is_valid_token",
    "build_webhook_url",
    "build_trigger_data",
    "redact_headers",
    "redact_config",
]
