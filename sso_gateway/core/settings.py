"""
Application settings
"""
from pathlib import Path
from typing import List, Optional, Union

from pydantic import AliasChoices, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root (one level above the package)
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    app_name: str = Field(default="SSO Gateway", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(
        default=False,
        validation_alias=AliasChoices("DEBUG", "APP_DEBUG"),
        description="Enable debug mode",
    )
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "ENV", "APP_ENV"),
        description="Application environment (development, staging, production)",
    )
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))
    log_dir: Optional[str] = Field(default="logs", validation_alias=AliasChoices("LOG_DIR"))

    # Server
    host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("GATEWAY_HOST", "HOST", "SERVER_HOST"),
        description="Server host",
    )
    port: int = Field(
        default=8000,
        validation_alias=AliasChoices("GATEWAY_PORT", "PORT", "SERVER_PORT"),
        description="Server port",
    )

    # OAuth
    oauth_host: str = Field(
        default="http://localhost:9090",
        validation_alias=AliasChoices("OAUTH_HOST", "OAUTH_DOMAIN"),
        description="Base URL of the authorization server",
    )
    api_host: str = Field(
        default="http://localhost:9090",
        validation_alias=AliasChoices("API_HOST", "API_GATEWAY_HOST"),
        description="Base URL that relative provider profile URLs are resolved against",
    )
    client_id: str = Field(
        default="",
        validation_alias=AliasChoices("CLIENT_ID", "OAUTH_CLIENT_ID"),
        description="OAuth client id",
    )
    client_secret: str = Field(
        default="",
        validation_alias=AliasChoices("CLIENT_SECRET", "OAUTH_CLIENT_SECRET"),
        description="OAuth client secret, also the logout payload encryption key",
    )
    base_path: str = Field(
        default="/auth",
        validation_alias=AliasChoices("BASE_PATH", "AUTH_BASE_PATH"),
        description="Mount path of the auth routes",
    )
    error_redirect: str = Field(
        default="/",
        validation_alias=AliasChoices("ERROR_REDIRECT", "AUTH_ERROR_REDIRECT"),
        description="Redirect target for failed logins",
    )
    token_path: str = Field(
        default="/v1/tokens",
        validation_alias=AliasChoices("TOKEN_PATH", "OAUTH_TOKEN_PATH"),
        description="Token endpoint path on the authorization server",
    )
    exchange_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices("EXCHANGE_TIMEOUT_SECONDS", "OAUTH_TIMEOUT"),
    )
    oauth_config_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OAUTH_CONFIG_PATH", "PROVIDERS_CONFIG_PATH"),
        description="Provider YAML file; defaults to config/oauth_providers.yaml",
    )

    # Session
    session_backend: str = Field(
        default="memory",
        validation_alias=AliasChoices("SESSION_BACKEND", "SESSION_STORE"),
        description="Session store backend (memory, redis)",
    )
    session_cookie_name: str = Field(
        default="sso_session",
        validation_alias=AliasChoices("SESSION_COOKIE_NAME", "COOKIE_NAME"),
    )
    session_ttl_seconds: int = Field(
        default=60 * 60 * 24,
        validation_alias=AliasChoices("SESSION_TTL_SECONDS", "SESSION_TTL"),
    )
    redis_url: Optional[str] = Field(default=None, validation_alias="REDIS_URL", description="Redis connection URL")
    redis_pool_size: int = Field(
        default=10,
        validation_alias=AliasChoices("REDIS_POOL_SIZE", "REDIS_CONNECTION_POOL_SIZE"),
    )
    redis_key_prefix: str = Field(default="sso:sess:", validation_alias=AliasChoices("REDIS_KEY_PREFIX"))

    # Cookie
    cookie_domain: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("COOKIE_DOMAIN", "SESSION_COOKIE_DOMAIN"),
        description="Cookie domain (e.g. '.example.com' in production)",
    )
    cookie_secure: bool = Field(
        default=False,
        validation_alias=AliasChoices("COOKIE_SECURE", "SESSION_COOKIE_SECURE"),
        description="Cookie Secure flag (forced on in production)",
    )
    cookie_samesite: str = Field(
        default="lax",
        validation_alias=AliasChoices("COOKIE_SAMESITE", "SESSION_COOKIE_SAMESITE"),
    )

    @computed_field
    @property
    def cookie_secure_effective(self) -> bool:
        """Secure flag, always on in production."""
        if self.environment == "production":
            return True
        return self.cookie_secure

    # Provider-initiated logout
    logout_header_key: str = Field(default="x-logout-token", validation_alias=AliasChoices("LOGOUT_HEADER_KEY"))
    logout_security_hash: str = Field(
        default="",
        validation_alias=AliasChoices("LOGOUT_SECURITY_HASH", "LOGOUT_TOKEN_HASH"),
        description="bcrypt hash of the shared logout secret",
    )
    logout_adapter: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("LOGOUT_ADAPTER", "SESSION_STORE_LOGOUT_ADAPTER"),
        description="'session_store' or a 'module:callable' reference",
    )

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        validation_alias=AliasChoices("CORS_ORIGINS", "CORS_ALLOWED_ORIGINS"),
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Accept a comma-separated string or a list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        elif isinstance(v, list):
            return v
        else:
            return []

    @field_validator("base_path", mode="after")
    @classmethod
    def normalize_base_path(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if v and not v.startswith("/"):
            v = f"/{v}"
        return v

    @field_validator("oauth_host", "api_host", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


settings = Settings()
