"""Caller allow-list with CIDR support.

Example:
    allow = CallerAllowList(["10.0.0.0/8", "192.168.1.20"])
    if not allow.check(request.remote).allowed:
        return 403
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from ipaddress import IPv4Network, IPv6Network, ip_address, ip_network

import structlog

logger = structlog.get_logger()


@dataclass
class AllowCheckResult:
    allowed: bool
    matched_rule: str | None
    reason: str


class CallerAllowList:
    """Admits callers whose address falls in one of the configured networks.

    An empty list admits everyone. Single addresses are stored as /32 or
    /128 networks. Malformed rules are logged and ignored.
    """

    def __init__(self, rules: Iterable[str] = ()):
        self._networks: list[IPv4Network | IPv6Network] = []
        for rule in rules:
            self.add(rule)

    def add(self, rule: str) -> bool:
        rule = rule.strip()
        if not rule:
            return False
        try:
            self._networks.append(ip_network(rule, strict=False))
        except ValueError:
            logger.warning("Ignoring malformed allow-list rule", rule=rule)
            return False
        return True

    @property
    def enabled(self) -> bool:
        return bool(self._networks)

    def check(self, ip: str | None) -> AllowCheckResult:
        if not self._networks:
            return AllowCheckResult(True, None, "No allow-list configured")

        try:
            addr = ip_address((ip or "").strip())
        except ValueError:
            return AllowCheckResult(False, None, f"Invalid IP address: {ip}")

        for network in self._networks:
            if addr in network:
                return AllowCheckResult(True, str(network), "IP in allowed network")
        return AllowCheckResult(False, None, "IP not in allow-list")

    def is_allowed(self, ip: str | None) -> bool:
        return self.check(ip).allowed

    def __len__(self) -> int:
        return len(self._networks)
