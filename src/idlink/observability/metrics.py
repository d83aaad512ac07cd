from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

SIGN_INS = Counter(
    "idlink_sign_ins_total",
    "Sign-in attempts started",
    ["provider", "mode"],
)

# outcome: one of the callback terminal states
CALLBACKS = Counter(
    "idlink_callbacks_total",
    "Provider callbacks by terminal outcome",
    ["provider", "outcome"],
)

SESSIONS_ISSUED = Counter(
    "idlink_sessions_issued_total",
    "Session tokens issued",
    ["source"],  # source: oauth/bridge
)

SESSIONS_REVOKED = Counter(
    "idlink_sessions_revoked_total",
    "Session tokens revoked by logout",
)

BRIDGE_ACCOUNTS_CREATED = Counter(
    "idlink_bridge_accounts_created_total",
    "Accounts created through the bridge",
)

PROVIDER_USABLE = Gauge(
    "idlink_provider_usable",
    "Whether a registered provider is currently usable",
    ["provider"],
)


def generate_metrics() -> bytes:
    return generate_latest()


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
