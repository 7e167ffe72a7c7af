"""Application configuration using pydantic-settings."""
from functools import lru_cache
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SERVER_NAME = "readeck-mcp"
SERVER_VERSION = "0.1.0"
DEFAULT_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Upstream Readeck instance
    readeck_base_url: str = Field(validation_alias="READECK_BASE_URL")
    readeck_api_token: str = Field(min_length=1, validation_alias="READECK_API_TOKEN")
    readeck_timeout_seconds: float = Field(
        default=20.0, gt=0, validation_alias="READECK_TIMEOUT_SECONDS",
    )
    readeck_user_agent: str = Field(
        default="readeck-mcp/0.1", validation_alias="READECK_USER_AGENT",
    )
    readeck_verify_tls: bool = Field(default=True, validation_alias="READECK_VERIFY_TLS")
    readeck_max_page_size: int = Field(
        default=100, gt=0, validation_alias="READECK_MAX_PAGE_SIZE",
    )

    # MCP transport
    mcp_transport: Literal["stdio", "http", "streamable-http"] = Field(
        default="stdio", validation_alias="MCP_TRANSPORT",
    )
    mcp_http_addr: str = Field(default="127.0.0.1:8080", validation_alias="MCP_HTTP_ADDR")
    mcp_http_path: str = Field(default="/mcp", validation_alias="MCP_HTTP_PATH")
    mcp_http_auth_token: str = Field(default="", validation_alias="MCP_HTTP_AUTH_TOKEN")

    # Origin allow-list - comma-separated (stored as string, parsed via property)
    allowed_origins_str: str = Field(default="", validation_alias="MCP_ALLOWED_ORIGINS")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @field_validator("readeck_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an absolute URL, and https unless the host is loopback."""
        v = v.strip()
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.hostname:
            raise ValueError("READECK_BASE_URL must include scheme and host")
        if parsed.scheme == "https":
            return v.rstrip("/")
        if parsed.scheme != "http":
            raise ValueError("READECK_BASE_URL must use https (or http for localhost)")
        if parsed.hostname.lower() not in _LOCAL_HOSTS:
            raise ValueError("READECK_BASE_URL must use https unless pointing to localhost")
        return v.rstrip("/")

    @field_validator("readeck_api_token", "mcp_http_auth_token")
    @classmethod
    def strip_token(cls, v: str) -> str:
        """Tokens are compared verbatim, so surrounding whitespace is dropped."""
        return v.strip()

    @field_validator("mcp_transport", mode="before")
    @classmethod
    def normalize_transport(cls, v: object) -> object:
        """Accept the transport name in any case."""
        if isinstance(v, str):
            return v.strip().lower() or "stdio"
        return v

    @field_validator("mcp_http_path")
    @classmethod
    def normalize_http_path(cls, v: str) -> str:
        """Ensure the MCP endpoint path starts with a slash."""
        v = v.strip() or "/mcp"
        return v if v.startswith("/") else f"/{v}"

    @property
    def api_base_url(self) -> str:
        """Base URL of the Readeck REST API."""
        return f"{self.readeck_base_url}/api"

    @property
    def allowed_origins(self) -> list[str]:
        """Parse comma-separated allowed origins string into a list."""
        if not self.allowed_origins_str:
            return []
        return [origin.strip() for origin in self.allowed_origins_str.split(",") if origin.strip()]

    @property
    def http_host(self) -> str:
        """Host part of MCP_HTTP_ADDR."""
        host, _, _ = self.mcp_http_addr.rpartition(":")
        return host.strip("[]") or "127.0.0.1"

    @property
    def http_port(self) -> int:
        """Port part of MCP_HTTP_ADDR."""
        _, _, port = self.mcp_http_addr.rpartition(":")
        return int(port) if port.isdigit() else 8080


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
