from idlink.observability.metrics import (
    BRIDGE_ACCOUNTS_CREATED,
    CALLBACKS,
    PROVIDER_USABLE,
    SESSIONS_ISSUED,
    SESSIONS_REVOKED,
    SIGN_INS,
    generate_metrics,
    get_content_type,
)

__all__ = [
    "BRIDGE_ACCOUNTS_CREATED",
    "CALLBACKS",
    "PROVIDER_USABLE",
    "SESSIONS_ISSUED",
    "SESSIONS_REVOKED",
    "SIGN_INS",
    "generate_metrics",
    "get_content_type",
]
