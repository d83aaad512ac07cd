"""HTTP service wiring.

AuthServer builds the provider registry, account store and flow
controller, and exposes them as an aiohttp application.
"""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import Awaitable, Callable

import structlog
from aiohttp import web
from pydantic import ValidationError

from idlink.accounts import AccountStore, MemoryAccountStore
from idlink.auth.bridge import BridgeAssertion, ExternalBridgeIssuer
from idlink.auth.errors import AuthFlowError, BridgeError
from idlink.auth.flow import OAuthFlowController, error_response, is_callback
from idlink.auth.registry import AuthServiceRegistry, build_registry
from idlink.auth.resolver import IdentityResolver
from idlink.auth.sessions import SessionIssuer
from idlink.core.config import AuthConfig, load_auth_config
from idlink.observability.metrics import generate_metrics, get_content_type
from idlink.security.allowlist import CallerAllowList

logger = structlog.get_logger()

MANAGE_TOKEN_HEADER = "X-Manage-Token"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def get_client_ip(request: web.Request) -> str:
    """Client address, honouring X-Forwarded-For and X-Real-IP from a fronting proxy."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP", "")
    if real_ip:
        return real_ip.strip()

    return request.remote or "unknown"


def is_secure_request(request: web.Request, default: bool) -> bool:
    proto = request.headers.get("X-Forwarded-Proto", "")
    if proto:
        return proto.split(",")[0].strip().lower() == "https"
    return request.secure or default


class AuthServer:
    """The sign-in gateway as an aiohttp application."""

    def __init__(
        self,
        config: AuthConfig,
        accounts: AccountStore | None = None,
        registry: AuthServiceRegistry | None = None,
        config_path: str | None = None,
    ):
        """Initialize the server.

        Args:
            config: Startup configuration
            accounts: Account store; defaults to an in-memory store
            registry: Provider registry; built from config if omitted
            config_path: File re-read by /admin/reload
        """
        self.config = config
        self.accounts = accounts or MemoryAccountStore(
            session_duration=config.session_ttl_days * 86400
        )
        self.registry = registry or build_registry(
            config, config_loader=lambda: load_auth_config(config_path)
        )
        self.sessions = SessionIssuer(
            self.accounts,
            host=config.host,
            cookie_name=config.session_cookie_name,
            ttl_days=config.session_ttl_days,
        )
        self.flow = OAuthFlowController(
            self.registry, IdentityResolver(self.accounts), self.sessions, config
        )
        self.bridge = ExternalBridgeIssuer(self.accounts, self.sessions, config.bridge_provider)
        self._bridge_allow = CallerAllowList(config.bridge_allow)
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[self._request_context])
        app.router.add_get("/auth", self._handle_list_services)
        if self.config.bridge_enabled:
            app.router.add_post("/auth/bridge", self._handle_bridge)
        app.router.add_get("/auth/{provider}", self._handle_auth)
        app.router.add_post("/logout", self._handle_logout)
        app.router.add_get("/whoami", self._handle_whoami)
        app.router.add_post("/admin/reload", self._handle_reload)
        app.router.add_get("/health", self._handle_health_check)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self) -> None:
        """Start serving on the configured bind address."""
        if isinstance(self.accounts, MemoryAccountStore):
            await self.accounts.start()

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        host, port = self._parse_bind(self.config.bind)
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        logger.info(
            "Auth server started",
            host=host,
            port=port,
            providers=self.registry.keys(),
            base_url=self.config.base_url,
        )

    async def stop(self) -> None:
        logger.info("Stopping auth server...")
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        if isinstance(self.accounts, MemoryAccountStore):
            await self.accounts.stop()
        logger.info("Auth server stopped")

    def _parse_bind(self, bind: str) -> tuple[str, int]:
        if ":" in bind:
            host, port = bind.rsplit(":", 1)
            return host, int(port)
        return "0.0.0.0", int(bind)

    @web.middleware
    async def _request_context(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        request["client_ip"] = get_client_ip(request)
        request["secure"] = is_secure_request(request, self.config.https)
        request["session_token"] = request.cookies.get(self.config.session_cookie_name)
        request["user"] = await self.sessions.resolve(request["session_token"])
        return await handler(request)

    async def _handle_auth(self, request: web.Request) -> web.Response:
        if is_callback(request.query):
            return await self.flow.complete_callback(request)
        return await self.flow.initiate_sign_in(request)

    async def _handle_list_services(self, request: web.Request) -> web.Response:
        services = [
            {
                "id": provider.key,
                "name": provider.name,
                "registrationEnabled": provider.is_registration_enabled(),
            }
            for provider in self.registry.usable()
        ]
        return web.json_response({"services": services})

    async def _handle_bridge(self, request: web.Request) -> web.Response:
        peer = request.remote
        if not self._bridge_allow.is_allowed(peer):
            logger.warning("Bridge call from disallowed address", ip=peer)
            return error_response(BridgeError.forbidden())

        try:
            data = await request.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return error_response(BridgeError.bad_request("Invalid data"))

        try:
            assertion = BridgeAssertion.model_validate(data)
        except ValidationError:
            return error_response(
                BridgeError.bad_request(
                    "Missing required fields: twitchId, twitchLogin, displayName, profileImageUrl"
                )
            )

        try:
            result = await self.bridge.issue(assertion, request["client_ip"])
        except AuthFlowError as e:
            logger.error("Bridge sign-in failed", error=e.message)
            return error_response(e)

        response = web.json_response(result.to_dict())
        self.sessions.set_session_cookie(response, result.token, request["secure"])
        return response

    async def _handle_logout(self, request: web.Request) -> web.Response:
        token = request["session_token"]
        if token:
            await self.sessions.revoke(token)

        response = web.json_response({"success": True})
        self.sessions.clear_session_cookie(response, request["secure"])
        return response

    async def _handle_whoami(self, request: web.Request) -> web.Response:
        user = request["user"]
        if user is None:
            return web.json_response({"username": "unauthed", "id": -1})

        response = web.json_response({"username": user.name, "id": user.id})
        # keep active sessions' cookies from expiring
        self.sessions.set_session_cookie(response, request["session_token"], request["secure"])
        return response

    async def _handle_reload(self, request: web.Request) -> web.Response:
        expected = self.config.manage_token
        provided = request.headers.get(MANAGE_TOKEN_HEADER, "")
        if not expected or not secrets.compare_digest(provided.encode(), expected.encode()):
            return web.Response(text="Unauthorized", status=401)

        states = await asyncio.to_thread(self.registry.reload_enabled_state)
        return web.json_response({"success": True, "providers": states})

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "healthy"})

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        return web.Response(body=generate_metrics(), headers={"Content-Type": get_content_type()})
