"""
Tests for outbound URL validation (SSRF protection).
"""

from unittest.mock import patch

import pytest

from feedsync.exceptions import SSRFError
from feedsync.url_validator import is_ip_blocked, validate_url


class TestValidateUrl:
    """Tests for validate_url."""

    # --- Allowed URLs ---

    def test_allows_https_url(self):
        """Should allow standard HTTPS URLs."""
        result = validate_url("https://example.com/feed.xml", resolve_dns=False)
        assert result == "https://example.com/feed.xml"

    def test_allows_public_ip(self):
        """Should allow public IP addresses."""
        assert validate_url("http://8.8.8.8/feed", resolve_dns=False) == "http://8.8.8.8/feed"

    # --- Blocked schemes ---

    @pytest.mark.parametrize("url", [
        "file:///etc/passwd",
        "ftp://example.com/file",
        "gopher://example.com/",
    ])
    def test_blocks_non_http_schemes(self, url):
        with pytest.raises(SSRFError, match="scheme.*not allowed"):
            validate_url(url)

    def test_requires_hostname(self):
        with pytest.raises(SSRFError):
            validate_url("http:///feed.xml", resolve_dns=False)

    # --- Blocked hosts ---

    @pytest.mark.parametrize("url", [
        "http://localhost/admin",
        "http://metadata.google.internal/",
        "http://myserver.local/",
        "http://service.internal/",
    ])
    def test_blocks_internal_hostnames(self, url):
        with pytest.raises(SSRFError, match="not allowed"):
            validate_url(url, resolve_dns=False)

    @pytest.mark.parametrize("url", [
        "http://127.0.0.1/",
        "http://10.0.0.5/",
        "http://192.168.1.1/",
        "http://169.254.169.254/latest/meta-data/",
        "http://[::1]/",
    ])
    def test_blocks_private_ip_literals(self, url):
        with pytest.raises(SSRFError, match="not allowed"):
            validate_url(url, resolve_dns=False)

    def test_blocks_hostname_resolving_to_private_ip(self):
        """A public-looking name that resolves inward is still blocked."""
        fake = [(2, 1, 6, "", ("10.1.2.3", 80))]
        with patch("feedsync.url_validator.socket.getaddrinfo", return_value=fake):
            with pytest.raises(SSRFError):
                validate_url("http://sneaky.example.com/")


class TestIsIpBlocked:
    """Tests for is_ip_blocked."""

    def test_carrier_grade_nat(self):
        assert is_ip_blocked("100.64.0.1")

    def test_ipv4_mapped_loopback(self):
        assert is_ip_blocked("::ffff:127.0.0.1")

    def test_public_address(self):
        assert not is_ip_blocked("93.184.216.34")

    def test_garbage_is_not_an_ip(self):
        assert not is_ip_blocked("not-an-ip")
