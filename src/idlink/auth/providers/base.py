"""Provider contract.

Each external identity service is one AuthProvider subclass. Instances are
created once at startup, keyed by provider id, and live for the whole
process; reload_enabled_state() only flips whether they are usable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

import structlog

from idlink.auth.state import StateRegistry
from idlink.core.config import AuthConfig, ProviderSettings

logger = structlog.get_logger()


class InvalidAccountError(Exception):
    """The provider account exists but may not be used here.

    The message is shown to the user.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthProvider(ABC):
    """Base class for identity providers.

    Subclasses implement the wire protocol; state bookkeeping, usability and
    registration policy live here.
    """

    display_name: ClassVar[str] = ""
    default_scopes: ClassVar[list[str]] = []

    def __init__(
        self,
        key: str,
        settings: ProviderSettings,
        callback_url: str,
        states: StateRegistry | None = None,
    ):
        self.key = key
        self._settings = settings
        self._callback_url = callback_url
        self._states = states if states is not None else StateRegistry()
        self._usable = settings.usable

    @classmethod
    def from_config(cls, key: str, config: AuthConfig) -> AuthProvider:
        """Build a provider from the global configuration."""
        return cls(
            key,
            config.provider(key),
            callback_url=config.callback_url(key),
            states=StateRegistry(
                ttl_seconds=config.state_ttl_seconds,
                single_use=config.state_single_use,
                max_pending=config.max_pending_states,
            ),
        )

    @property
    def name(self) -> str:
        return self.display_name or self.key.title()

    @property
    def settings(self) -> ProviderSettings:
        return self._settings

    @property
    def callback_url(self) -> str:
        return self._callback_url

    @property
    def scopes(self) -> list[str]:
        return self._settings.scopes or list(self.default_scopes)

    def generate_state(self) -> str:
        return self._states.generate()

    def verify_state(self, state: str) -> bool:
        return self._states.verify(state)

    def is_usable(self) -> bool:
        return self._usable

    def is_registration_enabled(self) -> bool:
        return self._settings.registration_enabled

    def reload_enabled_state(self, settings: ProviderSettings) -> bool:
        """Re-evaluate usability from freshly loaded settings.

        The new flag is published with a single assignment so concurrent
        lookups see either the old or the new value.
        """
        self._settings = settings
        was_usable, self._usable = self._usable, settings.usable
        if was_usable != self._usable:
            logger.info("Provider usability changed", provider=self.key, usable=self._usable)
        return self._usable

    @abstractmethod
    async def get_redirect_url(self, state: str) -> str:
        """Return the provider's authorize URL carrying ``state``."""

    @abstractmethod
    async def get_token(self, code: str) -> str | None:
        """Exchange an authorization code for an access token.

        Returns None if the provider rejects the code.
        """

    @abstractmethod
    async def get_identifier(self, token: str) -> str:
        """Return the stable account id behind ``token``.

        Raises:
            InvalidAccountError: If the account may not sign in
        """
