"""Registry of provider instances keyed by provider id."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import structlog

from idlink.auth.providers import PROVIDER_TYPES, AuthProvider
from idlink.core.config import AuthConfig
from idlink.observability.metrics import PROVIDER_USABLE

logger = structlog.get_logger()


class AuthServiceRegistry:
    """Holds the live provider instances.

    Keys are fixed after startup. reload_enabled_state() re-reads the
    configuration and flips each provider between usable and inert; it may
    run concurrently with lookups, which take no lock.
    """

    def __init__(self, config_loader: Callable[[], AuthConfig] | None = None):
        """Initialize the registry.

        Args:
            config_loader: Returns freshly loaded configuration for reloads
        """
        self._providers: dict[str, AuthProvider] = {}
        self._config_loader = config_loader

    def register(self, key: str, provider: AuthProvider) -> bool:
        """Add a provider if it is usable right now.

        Returns:
            True if the provider was retained
        """
        if not provider.is_usable():
            logger.info("Provider not usable, skipping registration", provider=key)
            return False
        self._providers[key] = provider
        PROVIDER_USABLE.labels(provider=key).set(1)
        logger.info("Provider registered", provider=key)
        return True

    def lookup(self, key: str) -> AuthProvider | None:
        return self._providers.get(key)

    def reload_enabled_state(self) -> dict[str, bool]:
        """Re-evaluate every registered provider against live configuration.

        Performs blocking file reads when a config loader is set; call it
        from a worker thread inside the event loop.

        Returns:
            Mapping of provider key to its new usability
        """
        if self._config_loader is None:
            raise RuntimeError("Registry has no configuration loader")
        config = self._config_loader()

        result = {}
        for key, provider in list(self._providers.items()):
            usable = provider.reload_enabled_state(config.provider(key))
            PROVIDER_USABLE.labels(provider=key).set(1 if usable else 0)
            result[key] = usable

        logger.info("Provider state reloaded", providers=result)
        return result

    def keys(self) -> list[str]:
        return list(self._providers)

    def usable(self) -> list[AuthProvider]:
        return [p for p in self._providers.values() if p.is_usable()]

    def usable_keys(self) -> list[str]:
        return [p.key for p in self.usable()]

    def __contains__(self, key: object) -> bool:
        return key in self._providers

    def __iter__(self) -> Iterator[AuthProvider]:
        return iter(list(self._providers.values()))

    def __len__(self) -> int:
        return len(self._providers)


def build_registry(
    config: AuthConfig,
    config_loader: Callable[[], AuthConfig] | None = None,
    provider_types: dict[str, type[AuthProvider]] | None = None,
) -> AuthServiceRegistry:
    """Instantiate every known provider and register the usable ones.

    Args:
        config: Configuration used at startup
        config_loader: Source of fresh configuration for reloads
        provider_types: Override of the provider table (defaults to PROVIDER_TYPES)
    """
    registry = AuthServiceRegistry(config_loader or (lambda: config))
    for key, provider_cls in (provider_types or PROVIDER_TYPES).items():
        registry.register(key, provider_cls.from_config(key, config))
    return registry
