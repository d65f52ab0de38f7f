"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.
"""
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ignore extra environment variables that aren't defined in the model
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # Server
    # ============================================================
    server: str = Field(
        "session",
        description="Which server to build: session, token, api_key or delegated"
    )
    port: int = Field(8080, description="HTTP port for `python -m authgate.api.main`")

    # ============================================================
    # Session Cookies
    # ============================================================
    session_secret: Optional[str] = Field(
        None,
        description="HMAC key for session cookies (random per process when unset)"
    )
    session_cookie_name: str = Field("session", description="Name of the session cookie")
    session_ttl_seconds: int = Field(86400, description="Session lifetime in seconds")
    session_cookie_secure: bool = Field(False, description="Set the Secure attribute (HTTPS only)")
    session_cookie_path: str = Field("/", description="Cookie Path attribute")

    # ============================================================
    # Form / JSON Login (hardcoded credential pair)
    # ============================================================
    login_username: str = Field("admin", description="Expected username")
    login_password: str = Field("1234", description="Expected password")

    # ============================================================
    # Bearer Tokens
    # ============================================================
    jwt_secret: Optional[str] = Field(
        None,
        description="HS256 signing secret (random per process when unset)"
    )
    jwt_ttl_seconds: int = Field(900, description="Token lifetime in seconds (15 minutes)")
    jwt_issuer: Optional[str] = Field(None, description="Optional iss claim to issue and require")

    # ============================================================
    # API Keys
    # ============================================================
    valid_api_keys: str = Field(
        "12345,abcdef",
        description="Comma-separated list of active API keys"
    )
    api_keys_file: Optional[str] = Field(
        None,
        description="Optional YAML registry of named API keys"
    )

    # ============================================================
    # Delegated Login (Google OAuth2 by default)
    # ============================================================
    google_client_id: Optional[str] = Field(None, description="OAuth client ID")
    google_client_secret: Optional[str] = Field(None, description="OAuth client secret")
    google_redirect_url: str = Field(
        "http://localhost:8080/auth/google/callback",
        description="Redirect URI registered with the provider"
    )
    oauth_authorize_url: str = Field(
        "https://accounts.google.com/o/oauth2/auth",
        description="Provider authorization endpoint"
    )
    oauth_token_url: str = Field(
        "https://oauth2.googleapis.com/token",
        description="Provider token endpoint"
    )
    oauth_userinfo_url: str = Field(
        "https://www.googleapis.com/oauth2/v2/userinfo",
        description="Provider profile endpoint"
    )
    oauth_scopes: str = Field(
        "https://www.googleapis.com/auth/userinfo.email,"
        "https://www.googleapis.com/auth/userinfo.profile",
        description="Comma-separated scopes requested at login"
    )
    oauth_state_ttl_seconds: int = Field(600, description="Lifetime of a pending login (10 minutes)")
    oauth_http_timeout_seconds: float = Field(10.0, description="Timeout for provider calls")

    # ============================================================
    # Logging Configuration
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )

    @property
    def oauth_scopes_list(self) -> List[str]:
        """Parse requested scopes into list."""
        return [scope.strip() for scope in self.oauth_scopes.split(",") if scope.strip()]


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
