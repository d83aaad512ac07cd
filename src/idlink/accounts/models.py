"""Account records shared between the auth flow and the account store."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class UserLogin:
    """An external identity: a provider key plus the provider's account id."""

    service: str
    service_user_id: str

    def __str__(self) -> str:
        return f"{self.service}:{self.service_user_id}"


@dataclass
class User:
    """A local account."""

    id: int
    name: str
    logins: list[UserLogin] = field(default_factory=list)
    signup_ip: str | None = None
    created_at: float = field(default_factory=time.time)


@dataclass
class LoginSession:
    """Server-side binding of a session token to a user.

    The token itself is the only thing sent to clients.
    """

    token: str
    user_id: int
    ip: str | None
    created_at: float = field(default_factory=time.time)
    expires_at: float = 0.0

    def __post_init__(self):
        """Set default expiration if not provided."""
        if self.expires_at == 0.0:
            self.expires_at = self.created_at + 24 * 86400

    @property
    def is_expired(self) -> bool:
        return time.time() > self.expires_at


@dataclass
class SignupTicket:
    """A verified external identity waiting to be redeemed into an account."""

    token: str
    login: UserLogin
    created_at: float = field(default_factory=time.time)
    ttl_seconds: float = 3600.0

    @property
    def is_expired(self) -> bool:
        return time.time() - self.created_at > self.ttl_seconds
