"""Public interface for merchant enrichment configuration settings."""

from .config import ENV_VAR_NAME, PROJECT_ROOT, ResolverSettings, Settings, get_settings, reload_settings

__all__ = [
    "Settings",
    "ResolverSettings",
    "get_settings",
    "reload_settings",
    "PROJECT_ROOT",
    "ENV_VAR_NAME",
]
