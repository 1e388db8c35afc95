"""Tests for web.backend.core.client_ip — client address resolution."""
from unittest.mock import MagicMock

import pytest
from starlette.datastructures import Headers

from web.backend.core.client_ip import (
    display_ip,
    get_client_ip,
    normalize_address,
    resolve_client_address,
)


class TestNormalizeAddress:

    def test_ipv4_mapped(self):
        assert normalize_address("::ffff:203.0.113.9") == "203.0.113.9"

    def test_ipv6_loopback(self):
        assert normalize_address("::1") == "127.0.0.1"

    def test_other_values_untouched(self):
        assert normalize_address("2001:db8::1") == "2001:db8::1"
        assert normalize_address("10.0.0.1") == "10.0.0.1"


class TestResolveClientAddress:
    """Header precedence: X-Forwarded-For, X-Real-IP, peer."""

    def test_xff_first_entry_wins(self):
        headers = {"x-forwarded-for": "1.2.3.4, 5.6.7.8"}
        assert resolve_client_address(headers, "9.9.9.9") == "1.2.3.4"

    def test_xff_header_case_insensitive(self):
        headers = {"X-Forwarded-For": "1.2.3.4"}
        assert resolve_client_address(headers, "9.9.9.9") == "1.2.3.4"

    def test_xff_mapped_address_normalized(self):
        headers = {"x-forwarded-for": "::ffff:203.0.113.9"}
        assert resolve_client_address(headers) == "203.0.113.9"

    def test_xff_loopback_normalized(self):
        assert resolve_client_address({"x-forwarded-for": "::1"}) == "127.0.0.1"

    def test_xff_skips_empty_segments(self):
        headers = {"x-forwarded-for": " , 1.2.3.4"}
        assert resolve_client_address(headers) == "1.2.3.4"

    def test_blank_xff_falls_through_to_real_ip(self):
        headers = {"x-forwarded-for": "   ", "x-real-ip": "5.5.5.5"}
        assert resolve_client_address(headers, "9.9.9.9") == "5.5.5.5"

    def test_real_ip_trimmed(self):
        headers = {"X-Real-IP": "  5.5.5.5  "}
        assert resolve_client_address(headers, "9.9.9.9") == "5.5.5.5"

    def test_real_ip_mapped_normalized(self):
        assert resolve_client_address({"x-real-ip": "::ffff:10.0.0.3"}) == "10.0.0.3"

    def test_peer_fallback(self):
        assert resolve_client_address({}, "9.9.9.9") == "9.9.9.9"

    def test_peer_mapped_normalized(self):
        assert resolve_client_address({}, "::ffff:192.168.1.4") == "192.168.1.4"
        assert resolve_client_address(None, "::1") == "127.0.0.1"

    def test_nothing_available(self):
        assert resolve_client_address({}, None) is None
        assert resolve_client_address(None) is None

    def test_starlette_headers_mixed_case(self):
        headers = Headers({"X-Forwarded-For": "1.2.3.4", "X-Real-IP": "5.5.5.5"})
        assert resolve_client_address(headers, "9.9.9.9") == "1.2.3.4"


class TestGetClientIP:

    def _request(self, headers=None, host="9.9.9.9"):
        request = MagicMock()
        request.headers = Headers(headers or {})
        request.client = MagicMock(host=host) if host else None
        return request

    def test_uses_peer(self):
        assert get_client_ip(self._request()) == "9.9.9.9"

    def test_uses_headers(self):
        assert get_client_ip(self._request({"x-real-ip": "5.5.5.5"})) == "5.5.5.5"

    def test_no_client(self):
        assert get_client_ip(self._request(host=None)) is None


@pytest.mark.parametrize("address,expected", [("1.2.3.4", "1.2.3.4"), (None, "unknown"), ("", "unknown")])
def test_display_ip(address, expected):
    assert display_ip(address) == expected
