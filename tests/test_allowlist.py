"""Tests for the caller allow-list."""

from __future__ import annotations

from idlink.security.allowlist import CallerAllowList


class TestCallerAllowList:
    """Tests for CallerAllowList."""

    def test_empty_allows_all(self):
        """Test an empty list admits everyone."""
        allow = CallerAllowList()
        assert allow.enabled is False
        assert allow.is_allowed("203.0.113.9")
        assert allow.is_allowed(None)

    def test_exact_address(self):
        """Test a single address rule."""
        allow = CallerAllowList(["192.168.1.20"])
        assert allow.is_allowed("192.168.1.20")
        assert not allow.is_allowed("192.168.1.21")

    def test_cidr(self):
        """Test network rules."""
        allow = CallerAllowList(["10.0.0.0/8"])
        result = allow.check("10.20.30.40")
        assert result.allowed
        assert result.matched_rule == "10.0.0.0/8"
        assert not allow.is_allowed("11.0.0.1")

    def test_ipv6(self):
        """Test IPv6 rules and addresses."""
        allow = CallerAllowList(["2001:db8::/32", "::1"])
        assert allow.is_allowed("2001:db8::1")
        assert allow.is_allowed("::1")
        assert not allow.is_allowed("2001:db9::1")

    def test_invalid_address_denied(self):
        """Test unparsable caller addresses are refused when a list is set."""
        allow = CallerAllowList(["10.0.0.0/8"])
        result = allow.check("not-an-ip")
        assert not result.allowed
        assert "Invalid IP address" in result.reason
        assert not allow.is_allowed(None)

    def test_malformed_rules_ignored(self):
        """Test malformed and blank rules are skipped."""
        allow = CallerAllowList(["bogus", "", "  ", "127.0.0.1"])
        assert len(allow) == 1
        assert allow.is_allowed("127.0.0.1")

    def test_add(self):
        """Test rules can be added later."""
        allow = CallerAllowList()
        assert allow.add("172.16.0.0/12") is True
        assert allow.add("nope") is False
        assert allow.enabled
        assert allow.is_allowed("172.16.5.4")
        assert not allow.is_allowed("8.8.8.8")
