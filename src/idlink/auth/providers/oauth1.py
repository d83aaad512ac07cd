"""OAuth 1.0a providers.

OAuth 1.0a has no ``code`` parameter: the callback carries oauth_token and
oauth_verifier, which the flow joins into a single ``token|verifier`` code.
The request-token secret needed to finish the exchange is kept here, keyed
by the request token, until the callback arrives or it expires.
"""

from __future__ import annotations

import time
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog
from authlib.integrations.base_client.errors import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth1Client

from idlink.auth.providers.base import AuthProvider, InvalidAccountError

logger = structlog.get_logger()

REQUEST_TOKEN_TTL = 600.0


class TumblrProvider(AuthProvider):
    display_name = "Tumblr"
    request_token_url = "https://www.tumblr.com/oauth/request_token"
    authorize_url = "https://www.tumblr.com/oauth/authorize"
    access_token_url = "https://www.tumblr.com/oauth/access_token"
    userinfo_url = "https://api.tumblr.com/v2/user/info"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._request_secrets: dict[str, tuple[str, float]] = {}

    def _client(self, **kwargs: Any) -> AsyncOAuth1Client:
        return AsyncOAuth1Client(
            client_id=self.settings.client_id,
            client_secret=self.settings.client_secret,
            **kwargs,
        )

    def _purge_request_secrets(self) -> None:
        cutoff = time.monotonic() - REQUEST_TOKEN_TTL
        for token in [t for t, (_, at) in self._request_secrets.items() if at < cutoff]:
            del self._request_secrets[token]

    async def get_redirect_url(self, state: str) -> str:
        # the provider does not echo a state parameter, so carry it on the callback
        callback = f"{self.callback_url}?{urlencode({'state': state})}"
        async with self._client(redirect_uri=callback) as client:
            request_token = await client.fetch_request_token(self.request_token_url)
            url = client.create_authorization_url(self.authorize_url)

        self._purge_request_secrets()
        self._request_secrets[request_token["oauth_token"]] = (
            request_token["oauth_token_secret"],
            time.monotonic(),
        )
        return url

    async def get_token(self, code: str) -> str | None:
        oauth_token, _, verifier = code.partition("|")
        entry = self._request_secrets.pop(oauth_token, None)
        if entry is None or not verifier:
            logger.warning("Unknown or expired request token", provider=self.key)
            return None

        try:
            async with self._client(token=oauth_token, token_secret=entry[0]) as client:
                token = await client.fetch_access_token(self.access_token_url, verifier=verifier)
        except (OAuthError, httpx.HTTPError, ValueError) as e:
            logger.warning("Token exchange failed", provider=self.key, error=str(e))
            return None
        return f"{token['oauth_token']}|{token['oauth_token_secret']}"

    async def get_identifier(self, token: str) -> str:
        access_token, _, access_secret = token.partition("|")
        try:
            async with self._client(token=access_token, token_secret=access_secret) as client:
                response = await client.get(self.userinfo_url)
                response.raise_for_status()
                payload = response.json()
            return str(payload["response"]["user"]["name"])
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("User info request failed", provider=self.key, error=str(e))
            raise InvalidAccountError("Could not load your Tumblr account details") from e
        except (KeyError, TypeError) as e:
            raise InvalidAccountError("Unexpected response from Tumblr") from e
