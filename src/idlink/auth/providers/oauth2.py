"""OAuth 2.0 providers.

OAuth2Provider implements the authorization-code flow on top of authlib's
httpx client; concrete services only declare endpoints, scopes and how to
read the account id out of their user-info payload.
"""

from __future__ import annotations

import time
from typing import Any, ClassVar
from urllib.parse import urlencode

import httpx
import structlog
from authlib.integrations.base_client.errors import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from idlink.auth.providers.base import AuthProvider, InvalidAccountError

logger = structlog.get_logger()

DISCORD_EPOCH_MS = 1420070400000


class OAuth2Provider(AuthProvider):
    """Generic authorization-code provider."""

    authorize_url: ClassVar[str]
    token_url: ClassVar[str]
    userinfo_url: ClassVar[str]
    token_endpoint_auth_method: ClassVar[str] = "client_secret_basic"
    extra_authorize_params: ClassVar[dict[str, str]] = {}

    def _headers(self) -> dict[str, str]:
        if self.settings.user_agent:
            return {"User-Agent": self.settings.user_agent}
        return {}

    def _client(self, **kwargs: Any) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self.settings.client_id,
            client_secret=self.settings.client_secret,
            redirect_uri=self.callback_url,
            token_endpoint_auth_method=self.token_endpoint_auth_method,
            headers=self._headers(),
            **kwargs,
        )

    async def get_redirect_url(self, state: str) -> str:
        params = {
            "client_id": self.settings.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
            **self.extra_authorize_params,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def get_token(self, code: str) -> str | None:
        try:
            async with self._client() as client:
                token = await client.fetch_token(self.token_url, code=code)
        except (OAuthError, httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Token exchange failed",
                provider=self.key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        return token.get("access_token")

    async def fetch_userinfo(self, token: str) -> Any:
        """GET the user-info endpoint with ``token`` as bearer credentials."""
        try:
            async with self._client(token={"access_token": token, "token_type": "Bearer"}) as client:
                response = await client.get(self.userinfo_url, headers=self.userinfo_headers())
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("User info request failed", provider=self.key, error=str(e))
            raise InvalidAccountError(f"Could not load your {self.name} account details") from e

    def userinfo_headers(self) -> dict[str, str]:
        return {}

    async def get_identifier(self, token: str) -> str:
        info = await self.fetch_userinfo(token)
        try:
            return self.extract_identifier(info)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise InvalidAccountError(f"Unexpected response from {self.name}") from e

    def extract_identifier(self, info: Any) -> str:
        return str(info["id"])

    def check_account_age(self, created_at: float) -> None:
        """Reject accounts younger than the configured minimum age."""
        min_days = self.settings.min_account_age_days
        if min_days and time.time() - created_at < min_days * 86400:
            raise InvalidAccountError(
                f"Your {self.name} account is too new. "
                f"Accounts must be at least {min_days} days old to sign in."
            )


class GoogleProvider(OAuth2Provider):
    display_name = "Google"
    default_scopes = ["openid"]
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://openidconnect.googleapis.com/v1/userinfo"
    token_endpoint_auth_method = "client_secret_post"

    def extract_identifier(self, info: Any) -> str:
        return str(info["sub"])


class DiscordProvider(OAuth2Provider):
    display_name = "Discord"
    default_scopes = ["identify"]
    authorize_url = "https://discord.com/oauth2/authorize"
    token_url = "https://discord.com/api/oauth2/token"
    userinfo_url = "https://discord.com/api/users/@me"
    token_endpoint_auth_method = "client_secret_post"
    extra_authorize_params = {"prompt": "none"}

    def extract_identifier(self, info: Any) -> str:
        user_id = str(info["id"])
        # snowflake ids encode the creation time in their top bits
        created_ms = (int(user_id) >> 22) + DISCORD_EPOCH_MS
        self.check_account_age(created_ms / 1000)
        return user_id


class RedditProvider(OAuth2Provider):
    display_name = "Reddit"
    default_scopes = ["identity"]
    authorize_url = "https://www.reddit.com/api/v1/authorize"
    token_url = "https://www.reddit.com/api/v1/access_token"
    userinfo_url = "https://oauth.reddit.com/api/v1/me"
    extra_authorize_params = {"duration": "temporary"}

    def _headers(self) -> dict[str, str]:
        # reddit rejects API calls without a descriptive User-Agent
        return {"User-Agent": self.settings.user_agent or "idlink/0.1"}

    def extract_identifier(self, info: Any) -> str:
        if "created_utc" in info:
            self.check_account_age(float(info["created_utc"]))
        return str(info["id"])


class TwitchProvider(OAuth2Provider):
    display_name = "Twitch"
    authorize_url = "https://id.twitch.tv/oauth2/authorize"
    token_url = "https://id.twitch.tv/oauth2/token"
    userinfo_url = "https://api.twitch.tv/helix/users"
    token_endpoint_auth_method = "client_secret_post"

    def userinfo_headers(self) -> dict[str, str]:
        return {"Client-Id": self.settings.client_id or ""}

    def extract_identifier(self, info: Any) -> str:
        return str(info["data"][0]["id"])


class VKProvider(OAuth2Provider):
    display_name = "VK"
    authorize_url = "https://oauth.vk.com/authorize"
    token_url = "https://oauth.vk.com/access_token"
    userinfo_url = "https://api.vk.com/method/users.get"
    token_endpoint_auth_method = "client_secret_post"
    api_version = "5.131"

    async def fetch_userinfo(self, token: str) -> Any:
        try:
            async with httpx.AsyncClient(headers=self._headers()) as client:
                response = await client.get(
                    self.userinfo_url,
                    params={"access_token": token, "v": self.api_version},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("User info request failed", provider=self.key, error=str(e))
            raise InvalidAccountError("Could not load your VK account details") from e

        if "error" in payload:
            raise InvalidAccountError(payload["error"].get("error_msg", "VK rejected the request"))
        return payload

    def extract_identifier(self, info: Any) -> str:
        return str(info["response"][0]["id"])
