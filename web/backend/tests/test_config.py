"""Tests for web.backend.core.config — application configuration."""
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from web.backend.core.config import DEFAULT_ALLOWED_IPS, WebSettings, parse_ip_list


class TestParseIPList:
    """Parsing comma-separated IP/CIDR/wildcard strings."""

    def test_empty(self):
        assert parse_ip_list("") == []
        assert parse_ip_list("   ") == []
        assert parse_ip_list(None) == []

    def test_trims_and_skips_empty(self):
        assert parse_ip_list(" 1.2.3.4 ,, 10.0.0.0/8, 192.168.1.* ,") == [
            "1.2.3.4", "10.0.0.0/8", "192.168.1.*",
        ]


class TestWebSettings:
    """Configuration parsing and validation."""

    def _make_settings(self, **overrides):
        """Create settings with required fields + overrides."""
        env = {"WEB_SECRET_KEY": "test-key"}
        env.update(overrides)
        with patch.dict(os.environ, env, clear=False):
            return WebSettings(**env)

    def test_default_values(self):
        s = WebSettings(WEB_SECRET_KEY="k", WEB_DEFAULT_ALLOWED_IPS=DEFAULT_ALLOWED_IPS)
        assert s.port == 4000
        assert s.jwt_algorithm == "HS256"
        assert s.jwt_expire_minutes == 24 * 60
        assert s.admin_role == "admin"
        assert s.default_allowed_ips == [
            "127.0.0.1", "localhost", "10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16",
        ]

    def test_default_allowed_ips_override(self):
        s = self._make_settings(WEB_DEFAULT_ALLOWED_IPS="127.0.0.1, 203.0.113.0/24")
        assert s.default_allowed_ips == ["127.0.0.1", "203.0.113.0/24"]

    def test_default_allowed_ips_can_be_empty(self):
        s = self._make_settings(WEB_DEFAULT_ALLOWED_IPS="")
        assert s.default_allowed_ips == []

    def test_cors_origins_parsing(self):
        s = self._make_settings(WEB_CORS_ORIGINS="http://a.com, http://b.com")
        assert s.cors_origins == ["http://a.com", "http://b.com"]

    def test_rate_limit_flag(self):
        assert self._make_settings(WEB_RATE_LIMIT_ENABLED="false").rate_limit_enabled is False

    @pytest.mark.parametrize("alg", ["HS256", "HS384", "HS512"])
    def test_hmac_algorithms_accepted(self, alg):
        assert self._make_settings(WEB_JWT_ALGORITHM=alg).jwt_algorithm == alg

    def test_asymmetric_algorithm_rejected(self):
        with pytest.raises(ValidationError):
            self._make_settings(WEB_JWT_ALGORITHM="RS256")

    def test_secret_key_required(self):
        env = {k: v for k, v in os.environ.items() if k != "WEB_SECRET_KEY"}
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValidationError):
                WebSettings(_env_file=None)
