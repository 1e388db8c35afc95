"""Web backend configuration."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Loopback and RFC 1918 ranges; partner networks are added per deployment.
DEFAULT_ALLOWED_IPS = "127.0.0.1,localhost,10.0.0.0/8,172.16.0.0/12,192.168.0.0/16"


def parse_ip_list(raw: Optional[str]) -> List[str]:
    """Parse comma-separated IP/CIDR/wildcard string into a list of trimmed entries."""
    if not raw or not raw.strip():
        return []
    return [ip.strip() for ip in raw.split(",") if ip.strip()]


class WebSettings(BaseSettings):
    """Settings for the CRM web backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    # App
    debug: bool = Field(default=False, alias="WEB_DEBUG")
    secret_key: str = Field(..., alias="WEB_SECRET_KEY")
    host: str = Field(default="0.0.0.0", alias="WEB_HOST")
    port: int = Field(default=4000, alias="WEB_PORT")

    # JWT
    jwt_algorithm: str = Field(default="HS256", alias="WEB_JWT_ALGORITHM")
    jwt_expire_minutes: int = Field(default=24 * 60, alias="WEB_JWT_EXPIRE_MINUTES")  # 24h session

    # IP policy: ranges that are always allowed unless the address is unknown
    default_allowed_ips_raw: str = Field(default=DEFAULT_ALLOWED_IPS, alias="WEB_DEFAULT_ALLOWED_IPS")
    admin_role: str = Field(default="admin", alias="WEB_ADMIN_ROLE")

    # Rate limiting (login endpoint)
    rate_limit_enabled: bool = Field(default=True, alias="WEB_RATE_LIMIT_ENABLED")

    # CORS
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="WEB_CORS_ORIGINS"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="WEB_LOG_LEVEL")
    log_dir: Optional[str] = Field(default=None, alias="WEB_LOG_DIR")

    # Database
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")

    @field_validator("jwt_algorithm", mode="before")
    @classmethod
    def validate_jwt_algorithm(cls, v):
        """Only allow HMAC-based JWT algorithms."""
        allowed = {"HS256", "HS384", "HS512"}
        if v not in allowed:
            raise ValueError(f"JWT algorithm must be one of {allowed}, got: {v}")
        return v

    @field_validator("default_allowed_ips_raw", mode="before")
    @classmethod
    def coerce_allowed_ips_to_str(cls, v):
        if v is None:
            return ""
        return str(v)

    @property
    def default_allowed_ips(self) -> List[str]:
        """Default always-allowed patterns as a list."""
        return parse_ip_list(self.default_allowed_ips_raw)

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if not self.cors_origins_raw:
            return []
        return [origin.strip() for origin in self.cors_origins_raw.split(",") if origin.strip()]


@lru_cache()
def get_web_settings() -> WebSettings:
    """Get cached web settings."""
    return WebSettings()
