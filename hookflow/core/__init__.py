# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Core utilities and shared modules for hookflow.

This package contains:
- config: Configuration management
- errors: Custom exceptions
- logging: Structured logging
"""

from hookflow.core.config import get_config, reload_config, Config
from hookflow.core.errors import (
    HookflowError,
    NotFoundError,
    ConfigurationError,
    ExecutionError,
    InvalidTransitionError,
)
from hookflow.core.logging import get_logger, log_event

__all__ = [
    "get_config",
    "reload_config",
    "Config",
    "HookflowError",
    "NotFoundError",
    "ConfigurationError",
    "ExecutionError",
    "InvalidTransitionError",
    "get_logger",
    "log_event",
]
