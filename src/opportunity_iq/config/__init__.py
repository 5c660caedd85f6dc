"""Configuration module for OpportunityIQ."""

from opportunity_iq.config.logging import bind_user, configure_logging, redact_secrets
from opportunity_iq.config.settings import (
    AIConfig,
    ConfigurationError,
    Settings,
    SupabaseConfig,
    get_settings,
    resolve_ai_config,
    resolve_supabase_config,
)

__all__ = [
    "AIConfig",
    "ConfigurationError",
    "Settings",
    "SupabaseConfig",
    "get_settings",
    "resolve_ai_config",
    "resolve_supabase_config",
    "configure_logging",
    "bind_user",
    "redact_secrets",
]
