"""Account store contract and an in-memory implementation.

The auth flow only talks to accounts through the AccountStore protocol.
Implementations must make each single-key get/create linearizable, but are
not expected to provide an atomic "check name is free, then create" across
calls; callers that search for free names must tolerate UsernameTakenError.
"""

from __future__ import annotations

import asyncio
import itertools
import secrets
import time
from typing import Protocol

import structlog

from idlink.accounts.models import LoginSession, SignupTicket, User, UserLogin

logger = structlog.get_logger()


class AccountStoreError(Exception):
    """Base error raised by account stores."""


class UsernameTakenError(AccountStoreError):
    """A user with the requested name already exists."""


class LoginTakenError(AccountStoreError):
    """The external identity is already bound to another account."""


class AccountStore(Protocol):
    """Capabilities the auth subsystem needs from account management."""

    async def get_by_login(self, service: str, service_user_id: str) -> User | None: ...

    async def create_signup_token(self, login: UserLogin) -> str: ...

    async def log_in(self, user: User, ip: str | None) -> str: ...

    async def log_out(self, token: str) -> bool: ...

    async def get_by_token(self, token: str) -> User | None: ...

    async def get_by_name(self, name: str) -> User | None: ...

    async def get_by_id(self, user_id: int) -> User | None: ...

    async def create_user(self, name: str, login: UserLogin, ip: str | None) -> User: ...


class MemoryAccountStore:
    """In-memory AccountStore with session and signup-token expiry.

    Suitable for development and tests. Names are unique case-insensitively
    and each UserLogin is bound to at most one user.
    """

    def __init__(
        self,
        session_duration: int = 24 * 86400,
        signup_token_ttl: float = 3600.0,
        cleanup_interval: float = 300.0,
    ):
        """Initialize the store.

        Args:
            session_duration: Server-side session lifetime in seconds
            signup_token_ttl: Lifetime of unredeemed signup tokens in seconds
            cleanup_interval: How often the background task purges expired entries
        """
        self._users: dict[int, User] = {}
        self._by_name: dict[str, int] = {}
        self._by_login: dict[UserLogin, int] = {}
        self._sessions: dict[str, LoginSession] = {}
        self._signups: dict[str, SignupTicket] = {}
        self._ids = itertools.count(1)
        self._session_duration = session_duration
        self._signup_token_ttl = signup_token_ttl
        self._cleanup_interval = cleanup_interval
        self._cleanup_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        """Start the background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Stop the background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    async def get_by_login(self, service: str, service_user_id: str) -> User | None:
        async with self._lock:
            user_id = self._by_login.get(UserLogin(service, service_user_id))
            return self._users.get(user_id) if user_id is not None else None

    async def get_by_name(self, name: str) -> User | None:
        async with self._lock:
            user_id = self._by_name.get(name.lower())
            return self._users.get(user_id) if user_id is not None else None

    async def get_by_id(self, user_id: int) -> User | None:
        async with self._lock:
            return self._users.get(user_id)

    async def create_user(self, name: str, login: UserLogin, ip: str | None) -> User:
        """Create a user bound to an external identity.

        Raises:
            UsernameTakenError: If the name is already in use
            LoginTakenError: If the identity is already bound
        """
        async with self._lock:
            if name.lower() in self._by_name:
                raise UsernameTakenError(f"Username {name!r} is taken")
            if login in self._by_login:
                raise LoginTakenError(f"Login {login} is already bound")

            user = User(id=next(self._ids), name=name, logins=[login], signup_ip=ip)
            self._users[user.id] = user
            self._by_name[name.lower()] = user.id
            self._by_login[login] = user.id

        logger.info("User created", user_id=user.id, username=name, service=login.service)
        return user

    async def create_signup_token(self, login: UserLogin) -> str:
        token = secrets.token_urlsafe(32)
        async with self._lock:
            self._signups[token] = SignupTicket(
                token=token, login=login, ttl_seconds=self._signup_token_ttl
            )
        return token

    async def redeem_signup_token(self, token: str) -> UserLogin | None:
        """Consume a signup token, returning the identity it wraps."""
        async with self._lock:
            ticket = self._signups.pop(token, None)
        if ticket is None or ticket.is_expired:
            return None
        return ticket.login

    async def log_in(self, user: User, ip: str | None) -> str:
        token = secrets.token_urlsafe(32)
        now = time.time()
        session = LoginSession(
            token=token,
            user_id=user.id,
            ip=ip,
            created_at=now,
            expires_at=now + self._session_duration,
        )
        async with self._lock:
            self._sessions[token] = session
        return token

    async def log_out(self, token: str) -> bool:
        async with self._lock:
            return self._sessions.pop(token, None) is not None

    async def get_by_token(self, token: str) -> User | None:
        """Return the user of a live session. Expired sessions are removed when accessed."""
        async with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.is_expired:
                del self._sessions[token]
                return None
            return self._users.get(session.user_id)

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)
                await self._cleanup_expired()
            except asyncio.CancelledError:
                break

    async def _cleanup_expired(self) -> int:
        """Remove expired sessions and signup tokens.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            expired_sessions = [t for t, s in self._sessions.items() if s.is_expired]
            for token in expired_sessions:
                del self._sessions[token]
            expired_signups = [t for t, s in self._signups.items() if s.is_expired]
            for token in expired_signups:
                del self._signups[token]

        removed = len(expired_sessions) + len(expired_signups)
        if removed:
            logger.debug("Purged expired account entries", removed=removed)
        return removed
