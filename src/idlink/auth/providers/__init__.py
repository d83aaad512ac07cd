"""Identity provider implementations.

PROVIDER_TYPES maps each provider key to its implementation. Adding a
provider means adding a class and an entry here.
"""

from __future__ import annotations

from idlink.auth.providers.base import AuthProvider, InvalidAccountError
from idlink.auth.providers.oauth1 import TumblrProvider
from idlink.auth.providers.oauth2 import (
    DiscordProvider,
    GoogleProvider,
    OAuth2Provider,
    RedditProvider,
    TwitchProvider,
    VKProvider,
)

PROVIDER_TYPES: dict[str, type[AuthProvider]] = {
    "reddit": RedditProvider,
    "google": GoogleProvider,
    "discord": DiscordProvider,
    "vk": VKProvider,
    "tumblr": TumblrProvider,
    "twitch": TwitchProvider,
}

__all__ = [
    "AuthProvider",
    "DiscordProvider",
    "GoogleProvider",
    "InvalidAccountError",
    "OAuth2Provider",
    "PROVIDER_TYPES",
    "RedditProvider",
    "TumblrProvider",
    "TwitchProvider",
    "VKProvider",
]
