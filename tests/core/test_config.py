"""Tests for application configuration."""
import pytest
from pydantic import ValidationError

from readeck_mcp.core.config import Settings


def _settings(**overrides: str) -> Settings:
    values = {"READECK_BASE_URL": "https://readeck.example.com", "READECK_API_TOKEN": "token"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestBaseUrlValidation:
    """Tests for READECK_BASE_URL validation."""

    def test_https_url_accepted_and_trailing_slash_stripped(self) -> None:
        """An https URL is accepted and normalized without a trailing slash."""
        settings = _settings(READECK_BASE_URL="https://readeck.example.com/")
        assert settings.readeck_base_url == "https://readeck.example.com"
        assert settings.api_base_url == "https://readeck.example.com/api"

    @pytest.mark.parametrize("url", ["http://localhost:8000", "http://127.0.0.1", "http://[::1]:8000"])
    def test_http_allowed_for_loopback(self, url: str) -> None:
        """Plain http is accepted for loopback hosts."""
        assert _settings(READECK_BASE_URL=url).readeck_base_url == url

    def test_http_rejected_for_remote_host(self) -> None:
        """Plain http to a remote host is rejected."""
        with pytest.raises(ValidationError, match="must use https"):
            _settings(READECK_BASE_URL="http://readeck.example.com")

    @pytest.mark.parametrize("url", ["readeck.example.com", "ftp://readeck.example.com", ""])
    def test_invalid_urls_rejected(self, url: str) -> None:
        """Relative URLs and other schemes are rejected."""
        with pytest.raises(ValidationError):
            _settings(READECK_BASE_URL=url)

    def test_token_required(self) -> None:
        """An empty API token is rejected."""
        with pytest.raises(ValidationError):
            _settings(READECK_API_TOKEN="")


class TestTransportSettings:
    """Tests for MCP transport settings."""

    def test_defaults(self) -> None:
        """Defaults select stdio on the loopback address."""
        settings = _settings()
        assert settings.mcp_transport == "stdio"
        assert settings.mcp_http_path == "/mcp"
        assert settings.http_host == "127.0.0.1"
        assert settings.http_port == 8080
        assert settings.readeck_timeout_seconds == 20.0
        assert settings.readeck_max_page_size == 100

    def test_transport_case_insensitive(self) -> None:
        """Transport names are normalized to lower case."""
        assert _settings(MCP_TRANSPORT=" HTTP ").mcp_transport == "http"

    def test_unknown_transport_rejected(self) -> None:
        """Unknown transport names fail validation."""
        with pytest.raises(ValidationError):
            _settings(MCP_TRANSPORT="websocket")

    def test_http_path_gets_leading_slash(self) -> None:
        """A path without a leading slash is normalized."""
        assert _settings(MCP_HTTP_PATH="rpc").mcp_http_path == "/rpc"

    @pytest.mark.parametrize(
        ("addr", "host", "port"),
        [
            ("0.0.0.0:9000", "0.0.0.0", 9000),
            (":9000", "127.0.0.1", 9000),
            ("[::1]:8443", "::1", 8443),
        ],
    )
    def test_http_addr_parsing(self, addr: str, host: str, port: int) -> None:
        """MCP_HTTP_ADDR is split into host and port."""
        settings = _settings(MCP_HTTP_ADDR=addr)
        assert settings.http_host == host
        assert settings.http_port == port

    def test_auth_token_stripped(self) -> None:
        """Surrounding whitespace is removed from the HTTP auth token."""
        assert _settings(MCP_HTTP_AUTH_TOKEN="  secret \n").mcp_http_auth_token == "secret"


class TestAllowedOriginsParsing:
    """Tests for allowed origins parsing from environment variables."""

    def test_parse_multiple_origins_with_whitespace(self) -> None:
        """Comma-separated origins are split and stripped."""
        settings = _settings(MCP_ALLOWED_ORIGINS=" https://a.example , https://b.example ,")
        assert settings.allowed_origins == ["https://a.example", "https://b.example"]

    def test_parse_empty_string(self) -> None:
        """Empty string results in empty list."""
        assert _settings(MCP_ALLOWED_ORIGINS="").allowed_origins == []
