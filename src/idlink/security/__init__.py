"""Request-level access controls."""

from idlink.security.allowlist import AllowCheckResult, CallerAllowList

__all__ = ["AllowCheckResult", "CallerAllowList"]
