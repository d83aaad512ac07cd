"""Mapping verified external identities onto local accounts."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from idlink.accounts import AccountStore, User, UserLogin
from idlink.auth.errors import PolicyError
from idlink.auth.providers import AuthProvider

logger = structlog.get_logger()


@dataclass
class SignupRequired:
    """No account is bound to the identity yet; the client must sign up.

    ``token`` is redeemed by the account-management surface.
    """

    token: str
    login: UserLogin


class IdentityResolver:
    """Finds the account for an identity, or prepares a signup for it."""

    def __init__(self, accounts: AccountStore):
        self._accounts = accounts

    async def resolve_or_prepare_signup(
        self, provider: AuthProvider, identifier: str
    ) -> User | SignupRequired:
        """Resolve ``(provider.key, identifier)``.

        Raises:
            PolicyError: If the identity is unknown and the provider does
                not allow registration
        """
        user = await self._accounts.get_by_login(provider.key, identifier)
        if user is not None:
            return user

        if not provider.is_registration_enabled():
            logger.info("Registration disabled for provider", provider=provider.key)
            raise PolicyError.registration_disabled()

        login = UserLogin(provider.key, identifier)
        token = await self._accounts.create_signup_token(login)
        logger.info("Signup token issued", provider=provider.key)
        return SignupRequired(token=token, login=login)
