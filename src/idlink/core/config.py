"""Configuration types with environment variable support.

All settings can be configured via environment variables with the IDLINK_ prefix.
Nested provider settings use a double underscore delimiter, e.g.
IDLINK_PROVIDERS__GOOGLE__CLIENT_ID=... sets providers["google"].client_id.

Settings can also be seeded from a YAML or TOML file; explicit file values
take precedence over the environment.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


class ProviderSettings(BaseModel):
    """Settings for a single identity provider."""

    enabled: bool = Field(
        default=False,
        description="Whether the provider may be used for sign-in.",
    )
    client_id: str | None = Field(
        default=None,
        description="OAuth client ID (consumer key for OAuth 1.0a providers).",
    )
    client_secret: str | None = Field(
        default=None,
        repr=False,
        description="OAuth client secret.",
    )
    registration_enabled: bool = Field(
        default=True,
        description="Allow unknown identities from this provider to sign up.",
    )
    scopes: list[str] | None = Field(
        default=None,
        description="Override the provider's default scopes.",
    )
    min_account_age_days: int = Field(
        default=0,
        ge=0,
        description="Reject external accounts younger than this (where the provider exposes it).",
    )
    user_agent: str | None = Field(
        default=None,
        description="User-Agent sent to provider APIs that require one.",
    )

    @property
    def usable(self) -> bool:
        """A provider is usable when enabled and fully credentialed."""
        return bool(self.enabled and self.client_id and self.client_secret)


class AuthConfig(BaseSettings):
    """Top-level configuration for the sign-in gateway.

    Build one with load_auth_config() to layer a YAML or TOML file under the
    environment (also used when reloading provider state).
    """

    model_config = SettingsConfigDict(
        env_prefix="IDLINK_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    host: str = Field(
        default="localhost",
        description="Public host name; session cookies are scoped to it.",
    )
    https: bool = Field(
        default=False,
        description="Whether the public front end is served over HTTPS.",
    )
    front_end_port: int | None = Field(
        default=None,
        description="Port of the public front end. None for the scheme default.",
    )
    public_url: str | None = Field(
        default=None,
        description="Base URL providers redirect back to. Derived from host/https/port if unset.",
    )
    bind: str = Field(
        default="0.0.0.0:8080",
        description="Address the HTTP service listens on.",
    )
    completion_path: str = Field(
        default="/auth_done.html",
        description="Static page that receives token/signup/nologin after a redirect-mode sign-in.",
    )
    session_cookie_name: str = Field(default="idlink-token")
    redirect_cookie_name: str = Field(default="idlink-auth-redirect")
    session_ttl_days: int = Field(
        default=24,
        ge=1,
        description="Lifetime of the session cookie pair in days.",
    )
    state_ttl_seconds: int = Field(
        default=600,
        ge=30,
        description="Lifetime of issued OAuth state tokens and the pending-redirect marker cookie.",
    )
    state_single_use: bool = Field(
        default=True,
        description="Consume state tokens on their first successful verification.",
    )
    max_pending_states: int = Field(
        default=10000,
        description="Upper bound on outstanding state tokens per provider.",
    )
    app_interstitial: bool = Field(
        default=False,
        description="Serve a 'Finish Login' page when a callback has no explicit json flag.",
    )
    manage_token: str | None = Field(
        default=None,
        repr=False,
        description="Shared secret for management endpoints (X-Manage-Token). Unset disables them.",
    )
    bridge_enabled: bool = Field(default=True)
    bridge_provider: str = Field(
        default="twitch",
        description="Provider key external identities from the bridge are bound under.",
    )
    bridge_allow: list[str] = Field(
        default_factory=list,
        description="IPs/CIDRs allowed to call the bridge. Empty allows all callers.",
    )
    log_level: str = Field(default="info")
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)

    @property
    def scheme(self) -> str:
        return "https" if self.https else "http"

    @property
    def base_url(self) -> str:
        """Public base URL of the service, without trailing slash."""
        if self.public_url:
            return self.public_url.rstrip("/")
        port = f":{self.front_end_port}" if self.front_end_port else ""
        return f"{self.scheme}://{self.host}{port}"

    @property
    def completion_url(self) -> str:
        return f"{self.base_url}{self.completion_path}"

    def callback_url(self, provider_key: str) -> str:
        """URL a provider redirects back to after authorization."""
        return f"{self.base_url}/auth/{provider_key}"

    def provider(self, key: str) -> ProviderSettings:
        """Settings for a provider key; unknown keys yield disabled settings."""
        return self.providers.get(key) or ProviderSettings()


def load_auth_config(path: str | Path | None = None) -> AuthConfig:
    """Build a fresh AuthConfig from an optional file plus the environment."""
    if path is None:
        return AuthConfig()
    return AuthConfig(**load_config_from_file(path))

