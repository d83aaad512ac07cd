"""Tests for configuration loading from environment variables and files."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from idlink.core.config import (
    AuthConfig,
    ProviderSettings,
    load_auth_config,
    load_config_from_file,
)


class TestProviderSettings:
    """Test ProviderSettings."""

    def test_default_is_not_usable(self) -> None:
        """Test a default provider is disabled and unusable."""
        settings = ProviderSettings()
        assert settings.enabled is False
        assert settings.registration_enabled is True
        assert settings.usable is False

    def test_usable_requires_credentials(self) -> None:
        """Test enabled alone is not enough to be usable."""
        assert ProviderSettings(enabled=True).usable is False
        assert ProviderSettings(enabled=True, client_id="id").usable is False
        assert ProviderSettings(enabled=True, client_id="id", client_secret="s").usable is True

    def test_disabled_with_credentials_is_not_usable(self) -> None:
        """Test credentials without enabled stay unusable."""
        assert ProviderSettings(client_id="id", client_secret="s").usable is False

    def test_secret_hidden_from_repr(self) -> None:
        """Test the client secret does not appear in repr."""
        settings = ProviderSettings(enabled=True, client_id="id", client_secret="hunter2")
        assert "hunter2" not in repr(settings)

    def test_negative_account_age_rejected(self) -> None:
        """Test min_account_age_days must be non-negative."""
        with pytest.raises(ValueError):
            ProviderSettings(min_account_age_days=-1)


class TestAuthConfig:
    """Test AuthConfig settings."""

    def test_default_values(self) -> None:
        """Test default values."""
        config = AuthConfig()
        assert config.host == "localhost"
        assert config.https is False
        assert config.session_cookie_name == "idlink-token"
        assert config.redirect_cookie_name == "idlink-auth-redirect"
        assert config.session_ttl_days == 24
        assert config.state_ttl_seconds == 600
        assert config.state_single_use is True
        assert config.app_interstitial is False
        assert config.bridge_provider == "twitch"
        assert config.bridge_allow == []
        assert config.providers == {}

    def test_base_url_from_host(self) -> None:
        """Test base URL is derived from scheme, host and port."""
        config = AuthConfig(host="example.org", https=True)
        assert config.base_url == "https://example.org"

        config = AuthConfig(host="example.org", front_end_port=8443)
        assert config.base_url == "http://example.org:8443"

    def test_public_url_overrides(self) -> None:
        """Test public_url wins and loses its trailing slash."""
        config = AuthConfig(host="example.org", public_url="https://login.example.org/")
        assert config.base_url == "https://login.example.org"
        assert config.callback_url("google") == "https://login.example.org/auth/google"

    def test_completion_url(self) -> None:
        """Test the completion page URL."""
        config = AuthConfig(host="example.org", https=True)
        assert config.completion_url == "https://example.org/auth_done.html"

    def test_unknown_provider_is_disabled(self) -> None:
        """Test lookup of an unconfigured provider yields disabled settings."""
        config = AuthConfig()
        assert config.provider("nope").usable is False

    def test_env_override_host(self) -> None:
        """Test IDLINK_HOST env var."""
        with patch.dict(os.environ, {"IDLINK_HOST": "pxls.example"}):
            config = AuthConfig()
            assert config.host == "pxls.example"

    def test_env_override_https(self) -> None:
        """Test IDLINK_HTTPS env var."""
        with patch.dict(os.environ, {"IDLINK_HTTPS": "true"}):
            config = AuthConfig()
            assert config.scheme == "https"

    def test_env_nested_provider(self) -> None:
        """Test nested provider settings from env vars."""
        env = {
            "IDLINK_PROVIDERS__GOOGLE__ENABLED": "true",
            "IDLINK_PROVIDERS__GOOGLE__CLIENT_ID": "gid",
            "IDLINK_PROVIDERS__GOOGLE__CLIENT_SECRET": "gsecret",
        }
        with patch.dict(os.environ, env):
            config = AuthConfig()
            assert config.provider("google").usable is True
            assert config.provider("google").client_id == "gid"


class TestConfigFiles:
    """Test loading configuration from files."""

    def test_load_yaml(self, tmp_path) -> None:
        """Test loading a YAML file."""
        path = tmp_path / "idlink.yaml"
        path.write_text(
            "host: example.org\n"
            "https: true\n"
            "providers:\n"
            "  discord:\n"
            "    enabled: true\n"
            "    client_id: did\n"
            "    client_secret: dsecret\n"
            "    min_account_age_days: 7\n"
        )
        config = load_auth_config(path)
        assert config.host == "example.org"
        assert config.provider("discord").usable is True
        assert config.provider("discord").min_account_age_days == 7

    def test_load_toml(self, tmp_path) -> None:
        """Test loading a TOML file."""
        path = tmp_path / "idlink.toml"
        path.write_text(
            'host = "example.org"\n'
            "\n"
            "[providers.reddit]\n"
            "enabled = true\n"
            'client_id = "rid"\n'
            'client_secret = "rsecret"\n'
            "registration_enabled = false\n"
        )
        config = load_auth_config(path)
        assert config.provider("reddit").usable is True
        assert config.provider("reddit").registration_enabled is False

    def test_empty_yaml(self, tmp_path) -> None:
        """Test an empty YAML file yields an empty mapping."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config_from_file(path) == {}

    def test_missing_file(self, tmp_path) -> None:
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "missing.yaml")

    def test_unsupported_format(self, tmp_path) -> None:
        """Test an unknown extension is rejected."""
        path = tmp_path / "idlink.ini"
        path.write_text("host=example.org")
        with pytest.raises(ValueError, match="Unsupported config format"):
            load_config_from_file(path)

    def test_invalid_yaml(self, tmp_path) -> None:
        """Test invalid YAML is reported as ValueError."""
        path = tmp_path / "bad.yaml"
        path.write_text("host: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config_from_file(path)
