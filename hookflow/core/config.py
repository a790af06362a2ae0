# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
hookflow Configuration - Single source of truth.
YAML for settings. Env vars for secrets and a handful of deployment overrides.
"""

import logging
import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from hookflow.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/hookflow/hookflow.yaml"


# =============================================================================
# CONFIGURATION DATACLASS
# =============================================================================

@dataclass(frozen=True)
class Config:
    """
    Immutable engine configuration.
    All values from YAML unless overridden by environment.
    """

    # -- HTTP --
    http_timeout_ms: int = 30000

    # -- AI --
    ai_base_url: str = "https://api.openai.com/v1"
    ai_model: str = "gpt-4o-mini"
    ai_timeout_ms: int = 60000
    ai_temperature: float = 0.7
    ai_max_tokens: int = 1000

    # -- Database --
    db_statement_timeout_ms: int = 30000

    # -- Retry defaults --
    retry_max_attempts: int = 0
    retry_initial_delay_ms: int = 1000
    retry_backoff_multiplier: float = 2.0
    retry_max_delay_ms: int = 30000

    # -- Expressions --
    expression_max_length: int = 1000

    # -- Paths --
    executions_path: str = "/var/lib/hookflow/executions"
    workflows_path: str = "/var/lib/hookflow/workflows"

    # -- Triggers --
    webhook_base_url: str = "http://localhost:3001"
    inbound_email_domain: str = "inbound.example.com"
    notification_from_email: str = "hookflow <noreply@example.com>"

    # -- Runtime --
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None


# =============================================================================
# SECRETS - The ONLY thing from environment variables
# =============================================================================

def get_mailgun_api_key() -> Optional[str]:
    """API keys cannot be in version control."""
    return os.getenv("MAILGUN_API_KEY")


def get_resend_api_key() -> Optional[str]:
    return os.getenv("RESEND_API_KEY")


# =============================================================================
# LOADER
# =============================================================================

def load_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    """
    Load configuration from YAML.
    Returns defaults (plus env overrides) if file doesn't exist.

    Raises:
        ConfigurationError: If the file exists but is not a YAML mapping
    """
    y: dict = {}
    if Path(path).exists():
        try:
            with open(path) as f:
                y = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config: {e}", config_file=path)
        if not isinstance(y, dict):
            raise ConfigurationError("Config root must be a mapping", config_file=path)
    else:
        logger.info(f"Config not found at {path}, using defaults")

    # Helper to safely navigate nested dicts
    def get(d: dict, *keys, default=None):
        for k in keys:
            if not isinstance(d, dict):
                return default
            d = d.get(k, {})
        return d if d != {} else default

    defaults = Config()
    return Config(
        # HTTP
        http_timeout_ms=get(y, "http", "timeout_ms") or defaults.http_timeout_ms,

        # AI
        ai_base_url=get(y, "ai", "base_url") or defaults.ai_base_url,
        ai_model=get(y, "ai", "model") or defaults.ai_model,
        ai_timeout_ms=get(y, "ai", "timeout_ms") or defaults.ai_timeout_ms,
        ai_temperature=get(y, "ai", "temperature", default=defaults.ai_temperature),
        ai_max_tokens=get(y, "ai", "max_tokens") or defaults.ai_max_tokens,

        # Database
        db_statement_timeout_ms=get(y, "database", "statement_timeout_ms") or defaults.db_statement_timeout_ms,

        # Retry
        retry_max_attempts=get(y, "retry", "max_attempts", default=defaults.retry_max_attempts),
        retry_initial_delay_ms=get(y, "retry", "initial_delay_ms") or defaults.retry_initial_delay_ms,
        retry_backoff_multiplier=get(y, "retry", "backoff_multiplier") or defaults.retry_backoff_multiplier,
        retry_max_delay_ms=get(y, "retry", "max_delay_ms") or defaults.retry_max_delay_ms,

        # Expressions
        expression_max_length=get(y, "expressions", "max_length") or defaults.expression_max_length,

        # Paths
        executions_path=get(y, "paths", "executions") or defaults.executions_path,
        workflows_path=get(y, "paths", "workflows") or defaults.workflows_path,

        # Triggers
        webhook_base_url=os.getenv("API_BASE_URL") or get(y, "triggers", "webhook_base_url") or defaults.webhook_base_url,
        inbound_email_domain=(
            os.getenv("INBOUND_EMAIL_DOMAIN")
            or get(y, "triggers", "inbound_email_domain")
            or defaults.inbound_email_domain
        ),
        notification_from_email=(
            os.getenv("NOTIFICATION_FROM_EMAIL")
            or get(y, "notifications", "from_email")
            or defaults.notification_from_email
        ),

        # Runtime
        log_level=os.getenv("HOOKFLOW_LOG_LEVEL") or get(y, "logging", "level") or defaults.log_level,
        log_format=get(y, "logging", "format") or defaults.log_format,
        log_file=os.getenv("HOOKFLOW_LOG_FILE") or get(y, "logging", "file") or defaults.log_file,
    )


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global config instance."""
    global _config
    if _config is None:
        config_path = os.getenv("HOOKFLOW_CONFIG_PATH", DEFAULT_CONFIG_PATH)
        _config = load_config(config_path)
    return _config


def reload_config() -> Config:
    """Force reload configuration."""
    global _config
    _config = None
    return get_config()
