"""Session issuance for identities asserted by a trusted upstream.

A companion service that has already authenticated a user against the
bridge provider posts the identity here; no OAuth exchange happens. The
identity is bound to an existing account or a new one with a derived
username.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from idlink.accounts import (
    AccountStore,
    LoginTakenError,
    User,
    UserLogin,
    UsernameTakenError,
)
from idlink.auth.errors import BridgeError
from idlink.auth.sessions import SessionIssuer
from idlink.observability.metrics import BRIDGE_ACCOUNTS_CREATED

logger = structlog.get_logger()

_USERNAME_STRIP = re.compile(r"[^a-z0-9_]")


class BridgeAssertion(BaseModel):
    """Identity asserted by the upstream service.

    display_name and profile_image_url are required but not stored.
    """

    model_config = ConfigDict(populate_by_name=True)

    external_id: str = Field(alias="twitchId", min_length=1)
    login: str = Field(alias="twitchLogin")
    display_name: str = Field(alias="displayName")
    profile_image_url: str = Field(alias="profileImageUrl")

    @field_validator("external_id", "login", "display_name", "profile_image_url", mode="before")
    @classmethod
    def stringify(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


@dataclass
class BridgeResult:
    token: str
    user_id: int
    username: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "token": self.token,
            "userId": self.user_id,
            "username": self.username,
        }


def derive_username(login: str, external_id: str) -> str:
    """Lower-case the login and keep only ``[a-z0-9_]``; fall back to ``user_<id>``."""
    name = _USERNAME_STRIP.sub("", login.lower())
    return name or f"user_{external_id}"


class ExternalBridgeIssuer:
    """Binds asserted identities to accounts and issues sessions for them."""

    def __init__(self, accounts: AccountStore, sessions: SessionIssuer, provider_key: str = "twitch"):
        self._accounts = accounts
        self._sessions = sessions
        self._provider_key = provider_key

    async def issue(self, assertion: BridgeAssertion, source_ip: str | None) -> BridgeResult:
        """Resolve or create the account for ``assertion`` and log it in.

        Raises:
            BridgeError: If no account could be created or found
        """
        user = await self._accounts.get_by_login(self._provider_key, assertion.external_id)
        if user is None:
            user = await self._create_account(assertion, source_ip)

        token = await self._sessions.issue(user, source_ip, source="bridge")
        return BridgeResult(token=token, user_id=user.id, username=user.name)

    async def _create_account(self, assertion: BridgeAssertion, source_ip: str | None) -> User:
        candidate = derive_username(assertion.login, assertion.external_id)
        username = await self._first_free_name(candidate)
        login = UserLogin(self._provider_key, assertion.external_id)

        try:
            user = await self._accounts.create_user(username, login, source_ip)
        except (UsernameTakenError, LoginTakenError) as e:
            # lost a race with a concurrent request; use whatever won it
            logger.warning("Bridge account creation collided", username=username, error=str(e))
            user = await self._accounts.get_by_login(self._provider_key, assertion.external_id)
            if user is None:
                user = await self._accounts.get_by_name(candidate)
            if user is None:
                raise BridgeError.account_error(f"Failed to create or find user: {e}") from e
            return user

        BRIDGE_ACCOUNTS_CREATED.inc()
        logger.info("Bridge account created", user_id=user.id, username=user.name)
        return user

    async def _first_free_name(self, candidate: str) -> str:
        username = candidate
        suffix = 1
        while await self._accounts.get_by_name(username) is not None:
            username = f"{candidate}{suffix}"
            suffix += 1
        return username
