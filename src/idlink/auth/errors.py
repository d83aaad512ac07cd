"""Error taxonomy for the sign-in flow.

Every error carries a machine-readable code, a user-facing message and the
HTTP status it maps to. Handlers turn them into a structured JSON body or,
in redirect mode, into a completion-page redirect flagged nologin=1.
"""

from __future__ import annotations

from typing import Any


class AuthFlowError(Exception):
    """Base class for expected sign-in failures."""

    status: int = 400

    def __init__(self, code: str, message: str, status: int | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        if status is not None:
            self.status = status

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "details": None,
        }


class ConfigurationError(AuthFlowError):
    """Unknown or inert provider."""

    @classmethod
    def bad_service(cls, key: str) -> ConfigurationError:
        return cls("bad_service", f"No auth service named {key}", 400)


class ProtocolError(AuthFlowError):
    """The callback request does not follow the OAuth protocol."""

    @classmethod
    def bad_state(cls) -> ProtocolError:
        return cls("bad_state", "Invalid state token", 400)

    @classmethod
    def missing_code(cls) -> ProtocolError:
        return cls("bad_code", "No OAuth code specified", 400)

    @classmethod
    def provider_error(cls, error: str) -> ProtocolError:
        if error == "access_denied":
            error = "Authentication denied by user"
        return cls("oauth_error", error, 401)


class UpstreamError(AuthFlowError):
    """The provider rejected the code or the account."""

    @classmethod
    def bad_code(cls) -> UpstreamError:
        return cls("bad_code", "OAuth code invalid", 401)

    @classmethod
    def invalid_account(cls, message: str) -> UpstreamError:
        return cls("invalid_account", message, 401)


class PolicyError(AuthFlowError):
    """The flow is valid but local policy refuses it."""

    @classmethod
    def registration_disabled(cls) -> PolicyError:
        return cls(
            "invalid_service_operation",
            "Registration is currently disabled for this service. "
            "Please try one of the other ones.",
            401,
        )


class BridgeError(AuthFlowError):
    """Bridge request rejected or could not be completed."""

    @classmethod
    def bad_request(cls, message: str) -> BridgeError:
        return cls("bad_request", message, 400)

    @classmethod
    def forbidden(cls) -> BridgeError:
        return cls("bridge_forbidden", "Caller is not allowed to use the bridge", 403)

    @classmethod
    def account_error(cls, message: str) -> BridgeError:
        return cls("account_error", message, 500)


class ServiceUnavailableError(AuthFlowError):
    """The flow cannot proceed right now; retrying later may succeed."""

    @classmethod
    def server_busy(cls) -> ServiceUnavailableError:
        return cls("server_busy", "Server busy, please try again later", 503)

    @classmethod
    def provider_unavailable(cls, key: str) -> ServiceUnavailableError:
        return cls("provider_unavailable", f"Could not reach auth service {key}", 502)
