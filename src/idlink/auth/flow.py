"""The OAuth sign-in flow.

Two requests make up one attempt:

1. Sign-in: the client asks for a provider's authorize URL. In redirect
   mode it is sent there directly and a short-lived marker cookie records
   that the callback should redirect as well.
2. Callback: the provider sends the browser back with ``state`` and a code
   (or ``oauth_token``/``oauth_verifier``, or ``error``). The state is
   checked, the code is exchanged for a token, the token for an account id,
   and the id is handed to the IdentityResolver.

Every callback ends in one terminal outcome, logged and counted in
``idlink_callbacks_total``.
"""

from __future__ import annotations

import html
from collections.abc import Mapping
from urllib.parse import urlencode

import structlog
from aiohttp import hdrs, web

from idlink.auth.errors import (
    AuthFlowError,
    ConfigurationError,
    PolicyError,
    ProtocolError,
    ServiceUnavailableError,
    UpstreamError,
)
from idlink.auth.providers import AuthProvider, InvalidAccountError
from idlink.auth.registry import AuthServiceRegistry
from idlink.auth.resolver import IdentityResolver, SignupRequired
from idlink.auth.sessions import SessionIssuer, format_cookie, same_site_for
from idlink.auth.state import AuthAttemptState, CompletionMode, resolve_completion_mode
from idlink.core.config import AuthConfig
from idlink.observability.metrics import CALLBACKS, SIGN_INS

logger = structlog.get_logger()

CALLBACK_PARAMS = ("state", "code", "oauth_token", "oauth_verifier", "error")

INTERSTITIAL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<title>Login</title>
<meta name="viewport" content="width=device-width, initial-scale=1.0, maximum-scale=1.0, user-scalable=0"/>
</head>
<body>
<a style="font-size:2em;font-weight:bold;" href="{href}">Finish Login</a><br>
Hold down long on that link and select to open with the app.
</body>
</html>
"""


def is_callback(query: Mapping[str, str]) -> bool:
    """A GET on a provider path is a callback if it carries any callback parameter."""
    return any(param in query for param in CALLBACK_PARAMS)


def extract_oauth_code(query: Mapping[str, str]) -> str | None:
    """Pull the one-time code out of a callback query.

    OAuth 2 providers send ``code``. OAuth 1.0a providers send
    ``oauth_token`` and ``oauth_verifier``, joined here as ``token|verifier``.
    """
    code = query.get("code")
    if code:
        return code

    oauth_token = query.get("oauth_token")
    oauth_verifier = query.get("oauth_verifier")
    if not oauth_token or not oauth_verifier:
        return None
    return f"{oauth_token}|{oauth_verifier}"


def client_ip(request: web.Request) -> str | None:
    return request.get("client_ip") or request.remote


def error_response(error: AuthFlowError) -> web.Response:
    return web.json_response(error.to_dict(), status=error.status)


def redirect_response(location: str) -> web.Response:
    return web.Response(status=302, headers={hdrs.LOCATION: location})


class OAuthFlowController:
    """Runs sign-in and callback requests against the provider registry."""

    def __init__(
        self,
        registry: AuthServiceRegistry,
        resolver: IdentityResolver,
        sessions: SessionIssuer,
        config: AuthConfig,
    ):
        self._registry = registry
        self._resolver = resolver
        self._sessions = sessions
        self._config = config

    def _secure(self, request: web.Request) -> bool:
        return bool(request.get("secure", self._config.https))

    def _usable_provider(self, key: str) -> AuthProvider:
        provider = self._registry.lookup(key)
        if provider is None or not provider.is_usable():
            raise ConfigurationError.bad_service(key)
        return provider

    async def initiate_sign_in(self, request: web.Request) -> web.Response:
        """Start a sign-in attempt for the provider named in the path."""
        key = request.match_info["provider"]
        try:
            provider = self._usable_provider(key)
        except ConfigurationError as e:
            logger.info("Sign-in for unknown provider", provider=key)
            return error_response(e)

        redirect = "redirect" in request.query
        mode = CompletionMode.REDIRECT if redirect else CompletionMode.JSON

        try:
            raw = provider.generate_state()
        except RuntimeError:
            return error_response(ServiceUnavailableError.server_busy())

        try:
            url = await provider.get_redirect_url(AuthAttemptState(raw, mode).encode())
        except Exception as e:
            logger.error("Could not build authorize URL", provider=key, error=str(e))
            return error_response(ServiceUnavailableError.provider_unavailable(key))

        SIGN_INS.labels(provider=key, mode=mode.value).inc()
        logger.info("Sign-in started", provider=key, mode=mode.value)

        if not redirect:
            return web.json_response({"redirect_url": url})

        response = redirect_response(url)
        secure = self._secure(request)
        response.headers.add(
            hdrs.SET_COOKIE,
            format_cookie(
                self._config.redirect_cookie_name,
                "1",
                max_age=self._config.state_ttl_seconds,
                secure=secure,
                samesite=same_site_for(secure),
            ),
        )
        return response

    async def complete_callback(self, request: web.Request) -> web.Response:
        """Finish a sign-in attempt from the provider's callback."""
        key = request.match_info["provider"]
        try:
            provider = self._usable_provider(key)
        except ConfigurationError as e:
            logger.info("Callback for unknown provider", provider=key)
            return error_response(e)

        query = request.query
        attempt, mode = resolve_completion_mode(
            query.get("state"), request.cookies, self._config.redirect_cookie_name
        )

        if (
            self._config.app_interstitial
            and mode is CompletionMode.JSON
            and "json" not in query
        ):
            response = self._interstitial(request)
        else:
            try:
                response = await self._authenticate(request, provider, attempt, mode)
            except AuthFlowError as e:
                if mode is CompletionMode.REDIRECT:
                    response = redirect_response(self._completion_url(nologin="1"))
                else:
                    response = error_response(e)

        self._expire_redirect_marker(response)
        return response

    async def _authenticate(
        self,
        request: web.Request,
        provider: AuthProvider,
        attempt: AuthAttemptState,
        mode: CompletionMode,
    ) -> web.Response:
        query = request.query

        if "error" in query:
            raise self._reject(provider, "provider_error", ProtocolError.provider_error(query["error"]))

        if not provider.verify_state(attempt.raw):
            raise self._reject(provider, "state_invalid", ProtocolError.bad_state())

        code = extract_oauth_code(query)
        if code is None:
            raise self._reject(provider, "code_missing", ProtocolError.missing_code())

        try:
            token = await provider.get_token(code)
        except Exception as e:
            logger.error("Token exchange raised", provider=provider.key, error=str(e))
            token = None
        if token is None:
            raise self._reject(provider, "token_exchange_failed", UpstreamError.bad_code())

        try:
            identifier = await provider.get_identifier(token)
        except InvalidAccountError as e:
            raise self._reject(
                provider, "identifier_invalid", UpstreamError.invalid_account(e.message)
            ) from e
        except Exception as e:
            logger.error("Identifier lookup raised", provider=provider.key, error=str(e))
            identifier = None
        if not identifier:
            raise self._reject(
                provider,
                "identifier_invalid",
                UpstreamError.invalid_account("Could not identify your account"),
            )

        try:
            result = await self._resolver.resolve_or_prepare_signup(provider, identifier)
        except PolicyError as e:
            raise self._reject(provider, "registration_disabled", e) from e

        if isinstance(result, SignupRequired):
            self._count(provider, "signup_required")
            return self._complete(mode, result.token, signup=True)

        session_token = await self._sessions.issue(result, client_ip(request))
        self._count(provider, "session_issued")
        response = self._complete(mode, session_token, signup=False)
        self._sessions.set_session_cookie(response, session_token, self._secure(request))
        return response

    def _complete(self, mode: CompletionMode, token: str, signup: bool) -> web.Response:
        if mode is CompletionMode.REDIRECT:
            return redirect_response(
                self._completion_url(token=token, signup="true" if signup else "false")
            )
        return web.json_response(
            {
                "success": True,
                "message": "Signup required" if signup else "Signed in",
                "details": {"token": token, "signup": signup},
            }
        )

    def _completion_url(self, **params: str) -> str:
        return f"{self._config.completion_url}?{urlencode(params)}"

    def _interstitial(self, request: web.Request) -> web.Response:
        # hand the untouched callback URL to the native app
        body = INTERSTITIAL_TEMPLATE.format(href=html.escape(str(request.rel_url), quote=True))
        return web.Response(text=body, content_type="text/html")

    def _expire_redirect_marker(self, response: web.Response) -> None:
        response.headers.add(
            hdrs.SET_COOKIE,
            format_cookie(self._config.redirect_cookie_name, "", max_age=0),
        )

    def _reject(self, provider: AuthProvider, outcome: str, error: AuthFlowError) -> AuthFlowError:
        self._count(provider, outcome)
        logger.info(
            "Callback rejected",
            provider=provider.key,
            outcome=outcome,
            code=error.code,
        )
        return error

    def _count(self, provider: AuthProvider, outcome: str) -> None:
        CALLBACKS.labels(provider=provider.key, outcome=outcome).inc()
        if outcome in ("session_issued", "signup_required"):
            logger.info("Callback completed", provider=provider.key, outcome=outcome)
