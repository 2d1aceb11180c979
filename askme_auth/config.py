"""
Configuration module for the AskMe authentication service.

This module uses Pydantic Settings to load and validate environment variables
for session token signing, the session cookie, the OIDC identity provider
(Microsoft Entra ID) and local / mock sign-in.

Environment variables are loaded from .env file or system environment.
"""

import re
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Only ever returned when USE_DEVELOPMENT_SECRET is set outside production.
DEVELOPMENT_SESSION_SECRET = (
    "askme-super-secret-jwt-key-2025-development-only-change-in-production-8f4a2e1b9c6d3f7a"
)

_GUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

_TENANT_ALIASES = ("common", "organizations", "consumers")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All configuration for session tokens, the session cookie, the OIDC
    provider and development-only sign-in paths is defined here.
    """

    # =========================================================================
    # Service Configuration
    # =========================================================================

    APP_ENV: Literal["development", "test", "production"] = Field(
        default="development",
        description="Deployment environment; controls cookie security and dev fallbacks",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    # =========================================================================
    # Session Token Configuration
    # =========================================================================

    SESSION_SECRET: Optional[str] = Field(
        None,
        description="Secret key for signing session tokens (must be cryptographically secure)",
        min_length=32,
    )

    USE_DEVELOPMENT_SECRET: bool = Field(
        default=False,
        description="Allow the built-in development secret when SESSION_SECRET is unset (never in production)",
    )

    SESSION_COOKIE_NAME: str = Field(
        default="session",
        description="Name of the cookie carrying the session token",
        min_length=1,
    )

    SESSION_LIFETIME_DAYS: int = Field(
        default=7,
        description="Absolute session lifetime in days",
        ge=1,
        le=30,
    )

    SESSION_COOKIE_SECURE: Optional[bool] = Field(
        None,
        description="Force the Secure cookie flag (default: on everywhere except development)",
    )

    # =========================================================================
    # OIDC / Entra ID Configuration
    # =========================================================================

    OIDC_TENANT_ID: str = Field(
        default="common",
        description="Entra ID tenant (GUID, or common / organizations / consumers)",
    )

    OIDC_CLIENT_ID: Optional[str] = Field(
        None,
        description="Application (client) ID registered with the identity provider",
    )

    OIDC_CLIENT_SECRET: Optional[str] = Field(
        None,
        description="Client secret (required for the code exchange of a web application)",
    )

    OIDC_CALLBACK_URL: str = Field(
        default="http://localhost:3000/oidc/callback",
        description="Redirect URI registered with the identity provider",
        min_length=1,
    )

    OIDC_SCOPE: str = Field(
        default="openid profile email User.Read",
        description="Space separated scopes requested at authorization time",
    )

    OIDC_RESPONSE_MODE: Literal["query", "form_post", "fragment"] = Field(
        default="query",
        description="How the provider returns the authorization response",
    )

    OIDC_USERINFO_URL: str = Field(
        default="https://graph.microsoft.com/v1.0/me",
        description="Profile endpoint queried with the access token",
    )

    OIDC_HTTP_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Ceiling for every outbound call to the identity provider",
        gt=0,
        le=120,
    )

    OIDC_STRICT_STATE: bool = Field(
        default=False,
        description="Reject callbacks whose state does not match the stored state",
    )

    # =========================================================================
    # Local / Mock Sign-in
    # =========================================================================

    ENABLE_MOCK_AUTH: bool = Field(
        default=False,
        description="Accept unsigned mock_token_* sessions (ignored in production)",
    )

    LOCAL_ADMIN_EMAIL: Optional[str] = Field(
        None,
        description="Email of the single locally configured account",
    )

    LOCAL_ADMIN_PASSWORD: Optional[str] = Field(
        None,
        description="Password of the locally configured account",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def using_development_secret(self) -> bool:
        """True when tokens are signed with the built-in development secret."""
        return not self.SESSION_SECRET and self.USE_DEVELOPMENT_SECRET and not self.is_production

    @property
    def session_signing_secret(self) -> str:
        """
        Return the secret used to sign and verify session tokens.

        Raises:
            ValueError: If no secret is configured and the development
                        fallback is not allowed.
        """
        if self.SESSION_SECRET:
            return self.SESSION_SECRET
        if self.using_development_secret:
            return DEVELOPMENT_SESSION_SECRET
        raise ValueError("SESSION_SECRET is not configured")

    @property
    def session_lifetime_seconds(self) -> int:
        return self.SESSION_LIFETIME_DAYS * 24 * 60 * 60

    @property
    def cookie_secure(self) -> bool:
        if self.SESSION_COOKIE_SECURE is not None:
            return self.SESSION_COOKIE_SECURE
        return self.APP_ENV != "development"

    @property
    def mock_tokens_enabled(self) -> bool:
        return self.ENABLE_MOCK_AUTH and not self.is_production

    @property
    def oidc_configured(self) -> bool:
        return bool(self.OIDC_CLIENT_ID)

    @property
    def oidc_authority(self) -> str:
        """
        Construct the Entra ID authority URL.

        Returns:
            Full authority URL for OIDC endpoints.
        """
        return f"https://login.microsoftonline.com/{self.OIDC_TENANT_ID}"

    @property
    def oidc_endpoints(self) -> Dict[str, str]:
        authority = self.oidc_authority
        return {
            "authorization": f"{authority}/oauth2/v2.0/authorize",
            "token": f"{authority}/oauth2/v2.0/token",
            "userinfo": self.OIDC_USERINFO_URL,
            "logout": f"{authority}/oauth2/v2.0/logout",
        }

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("OIDC_TENANT_ID")
    @classmethod
    def validate_tenant_id(cls, v: str) -> str:
        """
        Validate that the tenant is a GUID or one of the multi-tenant aliases.

        Raises:
            ValueError: If the value is neither
        """
        if v.lower() in _TENANT_ALIASES:
            return v.lower()
        if not _GUID_PATTERN.match(v):
            raise ValueError(
                f"Invalid tenant: {v}. "
                f"Expected a GUID or one of {', '.join(_TENANT_ALIASES)}"
            )
        return v.lower()

    @field_validator("OIDC_CLIENT_ID")
    @classmethod
    def validate_client_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not _GUID_PATTERN.match(v):
            raise ValueError(
                f"Invalid GUID format: {v}. "
                "Expected format: xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx"
            )
        return v.lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")
        return v.upper()

    @model_validator(mode="after")
    def check_signing_secret(self) -> "Settings":
        if self.SESSION_SECRET:
            return self
        if self.USE_DEVELOPMENT_SECRET and self.is_production:
            raise ValueError("USE_DEVELOPMENT_SECRET cannot be enabled when APP_ENV=production")
        if not self.USE_DEVELOPMENT_SECRET:
            raise ValueError(
                "SESSION_SECRET is required "
                "(set USE_DEVELOPMENT_SECRET=true to use the development fallback locally)"
            )
        return self


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup so that security smells (development
    secret, insecure cookies, missing OIDC secret) end up in the logs.

    Returns:
        Dictionary with validation status and any warnings.
    """
    errors = []
    warnings = []

    if settings.using_development_secret:
        warnings.append("Session tokens are signed with the development secret; set SESSION_SECRET")

    if not settings.cookie_secure and settings.APP_ENV != "development":
        warnings.append("Session cookie is not marked Secure outside development")

    if settings.oidc_configured and not settings.OIDC_CLIENT_SECRET:
        warnings.append("OIDC_CLIENT_SECRET is not set; code exchange will fail")

    if settings.OIDC_CLIENT_SECRET and not settings.oidc_configured:
        errors.append("OIDC_CLIENT_SECRET is set but OIDC_CLIENT_ID is missing")

    if not settings.OIDC_STRICT_STATE:
        warnings.append("OIDC state mismatches are logged but not rejected (OIDC_STRICT_STATE=false)")

    if settings.mock_tokens_enabled:
        warnings.append("Unsigned mock tokens are accepted (ENABLE_MOCK_AUTH=true)")

    if bool(settings.LOCAL_ADMIN_EMAIL) != bool(settings.LOCAL_ADMIN_PASSWORD):
        errors.append("LOCAL_ADMIN_EMAIL and LOCAL_ADMIN_PASSWORD must be set together")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "environment": settings.APP_ENV,
        "session_lifetime_days": settings.SESSION_LIFETIME_DAYS,
    }
