"""Core."""

from .config import (
    AuthConfig,
    ProviderSettings,
    load_auth_config,
    load_config_from_file,
)

__all__ = [
    "AuthConfig",
    "ProviderSettings",
    "load_auth_config",
    "load_config_from_file",
]
