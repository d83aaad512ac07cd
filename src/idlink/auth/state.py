"""OAuth state tokens.

A state token is the CSRF nonce round-tripped through the provider. On the
wire it also carries the completion mode the client asked for, as
``raw|redirect`` or ``raw|json``. AuthAttemptState is the only place that
format is produced or parsed.

StateRegistry keeps the raw nonces a provider has issued so callbacks can be
verified before any network call is made.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger()

STATE_SEPARATOR = "|"


class CompletionMode(Enum):
    """How a finished sign-in is reported back to the client."""

    REDIRECT = "redirect"
    JSON = "json"


@dataclass(frozen=True)
class AuthAttemptState:
    """A raw state nonce plus the optional completion mode requested with it."""

    raw: str
    mode: CompletionMode | None = None

    def encode(self) -> str:
        if self.mode is None:
            return self.raw
        return f"{self.raw}{STATE_SEPARATOR}{self.mode.value}"

    @classmethod
    def decode(cls, value: str | None) -> AuthAttemptState:
        """Parse ``raw[|mode]``.

        Any non-empty suffix other than ``redirect`` means JSON. An empty
        suffix is treated as no explicit mode.
        """
        raw, _, suffix = (value or "").partition(STATE_SEPARATOR)
        suffix = suffix.split(STATE_SEPARATOR, 1)[0]
        if not suffix:
            return cls(raw)
        if suffix == CompletionMode.REDIRECT.value:
            return cls(raw, CompletionMode.REDIRECT)
        return cls(raw, CompletionMode.JSON)

    def resolve_mode(self, redirect_cookie_present: bool) -> CompletionMode:
        """Explicit suffix wins, then the pending-redirect cookie, then JSON."""
        if self.mode is not None:
            return self.mode
        if redirect_cookie_present:
            return CompletionMode.REDIRECT
        return CompletionMode.JSON


def resolve_completion_mode(
    state: str | None, cookies: Mapping[str, str], redirect_cookie_name: str
) -> tuple[AuthAttemptState, CompletionMode]:
    """Decode a callback's state and pick its completion mode."""
    attempt = AuthAttemptState.decode(state)
    return attempt, attempt.resolve_mode(redirect_cookie_name in cookies)


class StateRegistry:
    """Issued state nonces for one provider.

    States expire after ``ttl_seconds``. With ``single_use`` they are
    consumed by their first successful verification, so a replayed callback
    fails with bad_state.
    """

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        single_use: bool = True,
        max_pending: int = 10000,
    ):
        self._ttl = ttl_seconds
        self._single_use = single_use
        self._max_pending = max_pending
        self._issued: dict[str, float] = {}

    def generate(self) -> str:
        """Issue a fresh URL-safe nonce.

        Raises:
            RuntimeError: If too many states are outstanding even after cleanup
        """
        if len(self._issued) >= self._max_pending:
            self.cleanup()
            if len(self._issued) >= self._max_pending:
                logger.warning("Too many pending OAuth states, rejecting new request")
                raise RuntimeError("Server busy, please try again later")

        state = secrets.token_urlsafe(32)
        self._issued[state] = time.monotonic()
        return state

    def verify(self, raw: str) -> bool:
        if not raw:
            return False
        issued_at = self._issued.get(raw)
        if issued_at is None:
            return False
        if time.monotonic() - issued_at > self._ttl:
            self._issued.pop(raw, None)
            return False
        if self._single_use:
            self._issued.pop(raw, None)
        return True

    def cleanup(self) -> int:
        """Drop expired states, returning how many were removed."""
        cutoff = time.monotonic() - self._ttl
        expired = [state for state, issued_at in self._issued.items() if issued_at < cutoff]
        for state in expired:
            del self._issued[state]
        return len(expired)

    def __len__(self) -> int:
        return len(self._issued)
