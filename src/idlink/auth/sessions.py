"""Session issuance and the session cookie pair.

The session cookie is written twice, once with ``Domain=.host`` and once
with ``Domain=host``, so browsers that match cookies by either rule see it.
Both copies share value, expiry and flags. Because the two copies have the
same name they are emitted as raw Set-Cookie headers rather than through
the response's cookie jar, which keys cookies by name.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
from http.cookies import SimpleCookie

import structlog
from aiohttp import hdrs, web

from idlink.accounts import AccountStore, User
from idlink.observability.metrics import SESSIONS_ISSUED, SESSIONS_REVOKED

logger = structlog.get_logger()

DEFAULT_SESSION_TTL_DAYS = 24


def format_cookie(
    name: str,
    value: str,
    *,
    expires: datetime | None = None,
    max_age: int | None = None,
    domain: str | None = None,
    path: str = "/",
    secure: bool = False,
    httponly: bool = False,
    samesite: str | None = None,
) -> str:
    """Render a single Set-Cookie header value."""
    jar: SimpleCookie = SimpleCookie()
    jar[name] = value
    morsel = jar[name]
    morsel["path"] = path
    if domain:
        morsel["domain"] = domain
    if expires is not None:
        morsel["expires"] = format_datetime(expires, usegmt=True)
    if max_age is not None:
        morsel["max-age"] = str(max_age)
    if secure:
        morsel["secure"] = True
    if httponly:
        morsel["httponly"] = True
    if samesite:
        morsel["samesite"] = samesite
    return morsel.OutputString()


def same_site_for(secure: bool) -> str:
    """Cross-site cookies need SameSite=None, which browsers only accept with Secure."""
    return "None" if secure else "Lax"


class SessionIssuer:
    """Mints, revokes and writes session credentials."""

    def __init__(
        self,
        accounts: AccountStore,
        host: str,
        cookie_name: str = "idlink-token",
        ttl_days: int = DEFAULT_SESSION_TTL_DAYS,
    ):
        self._accounts = accounts
        self._host = host
        self._cookie_name = cookie_name
        self._ttl_days = ttl_days

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    async def issue(self, user: User, source_ip: str | None, source: str = "oauth") -> str:
        """Create a session token for ``user``; persistence is the store's job."""
        token = await self._accounts.log_in(user, source_ip)
        SESSIONS_ISSUED.labels(source=source).inc()
        logger.info("Session issued", user_id=user.id, source=source)
        return token

    async def revoke(self, token: str) -> bool:
        """Delete the server-side binding now. The caller expires the cookie."""
        revoked = await self._accounts.log_out(token)
        if revoked:
            SESSIONS_REVOKED.inc()
            logger.info("Session revoked")
        return revoked

    async def resolve(self, token: str | None) -> User | None:
        if not token:
            return None
        return await self._accounts.get_by_token(token)

    def set_session_cookie(
        self,
        response: web.StreamResponse,
        token: str,
        secure: bool,
        ttl_days: int | None = None,
    ) -> None:
        """Write the session cookie pair, clearing any stale host-only copy first."""
        now = datetime.now(UTC)
        days = self._ttl_days if ttl_days is None else ttl_days

        response.headers.add(
            hdrs.SET_COOKIE,
            format_cookie(self._cookie_name, "", expires=now - timedelta(days=1)),
        )

        expires = now + timedelta(days=days)
        for domain in (f".{self._host}", self._host):
            response.headers.add(
                hdrs.SET_COOKIE,
                format_cookie(
                    self._cookie_name,
                    token,
                    expires=expires,
                    domain=domain,
                    secure=secure,
                    httponly=True,
                    samesite=same_site_for(secure),
                ),
            )

    def clear_session_cookie(self, response: web.StreamResponse, secure: bool) -> None:
        self.set_session_cookie(response, "", secure, ttl_days=-1)
