"""External identity sign-in.

The OAuth flow (OAuthFlowController) and the trusted bridge
(ExternalBridgeIssuer) both end in SessionIssuer; IdentityResolver maps
verified identities onto local accounts.
"""

from idlink.auth.bridge import BridgeAssertion, BridgeResult, ExternalBridgeIssuer, derive_username
from idlink.auth.errors import (
    AuthFlowError,
    BridgeError,
    ConfigurationError,
    PolicyError,
    ProtocolError,
    ServiceUnavailableError,
    UpstreamError,
)
from idlink.auth.flow import OAuthFlowController, extract_oauth_code, is_callback
from idlink.auth.registry import AuthServiceRegistry, build_registry
from idlink.auth.resolver import IdentityResolver, SignupRequired
from idlink.auth.sessions import SessionIssuer
from idlink.auth.state import AuthAttemptState, CompletionMode, StateRegistry

__all__ = [
    "AuthAttemptState",
    "AuthFlowError",
    "AuthServiceRegistry",
    "BridgeAssertion",
    "BridgeError",
    "BridgeResult",
    "CompletionMode",
    "ConfigurationError",
    "ExternalBridgeIssuer",
    "IdentityResolver",
    "OAuthFlowController",
    "PolicyError",
    "ProtocolError",
    "ServiceUnavailableError",
    "SessionIssuer",
    "SignupRequired",
    "StateRegistry",
    "UpstreamError",
    "build_registry",
    "derive_username",
    "extract_oauth_code",
    "is_callback",
]
