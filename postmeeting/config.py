"""
Configuration management using Pydantic Settings.
All secrets loaded from environment variables.
"""
from functools import lru_cache
from typing import List, Optional

from cryptography.fernet import Fernet
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./postmeeting.db",
        description="SQLAlchemy async database URL"
    )

    # Encryption
    encryption_key: str = Field(..., description="Fernet encryption key for token storage")

    # Application Security
    secret_key: str = Field(..., description="Secret key for session management")
    cron_secret: Optional[str] = Field(None, description="Bearer secret for scheduled triggers")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL used to build OAuth redirect URIs"
    )
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins"
    )

    # Google
    google_client_id: str = Field(default="", description="Google OAuth client ID")
    google_client_secret: str = Field(default="", description="Google OAuth client secret")
    google_scopes: List[str] = Field(
        default=[
            "openid",
            "email",
            "profile",
            "https://www.googleapis.com/auth/calendar.readonly",
        ],
        description="Google OAuth scopes"
    )

    # LinkedIn
    linkedin_client_id: str = Field(default="", description="LinkedIn OAuth client ID")
    linkedin_client_secret: str = Field(default="", description="LinkedIn OAuth client secret")
    linkedin_scopes: List[str] = Field(
        default=["openid", "profile", "w_member_social"],
        description="LinkedIn OAuth scopes"
    )

    # Facebook
    facebook_client_id: str = Field(default="", description="Facebook app ID")
    facebook_client_secret: str = Field(default="", description="Facebook app secret")
    facebook_scopes: List[str] = Field(
        default=["pages_manage_posts", "pages_read_engagement", "public_profile"],
        description="Facebook permissions"
    )
    facebook_graph_version: str = Field(default="v18.0", description="Graph API version")

    # Recall.ai meeting bot
    recall_api_key: Optional[str] = Field(None, description="Recall.ai API key")
    recall_api_base_url: str = Field(
        default="https://api.recall.ai/api/v1",
        description="Recall.ai API base URL"
    )
    recall_auth_scheme: str = Field(default="Token", description="Authorization header scheme")
    recall_bot_name: str = Field(default="Post-Meeting Assistant", description="Default bot name")
    recall_rate_limit_per_second: int = Field(default=5, description="Recall API rate limit per second")

    # OpenAI for content generation
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model to use")
    openai_rate_limit_per_minute: int = Field(default=10, description="OpenAI API rate limit per minute")

    # Scheduling
    default_bot_join_minutes_before: int = Field(
        default=5,
        description="Minutes before a meeting starts that the bot joins"
    )
    join_window_minutes: int = Field(
        default=5,
        description="Tolerance around the join time for the join-meetings trigger"
    )
    join_lookahead_minutes: int = Field(
        default=60,
        description="How far ahead the join-meetings trigger looks for meetings"
    )
    calendar_lookahead_days: int = Field(default=90, description="Days of calendar events to sync")

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=10.0, description="Timeout for every outbound request")

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: str) -> str:
        """Validate that encryption key is valid Fernet key."""
        try:
            Fernet(v.encode() if isinstance(v, str) else v)
            return v
        except Exception:
            raise ValueError("Invalid encryption key. Generate using: Fernet.generate_key().decode()")

    @property
    def is_recall_configured(self) -> bool:
        """Check if the Recall bot API is configured."""
        return bool(self.recall_api_key)

    @property
    def is_openai_configured(self) -> bool:
        """Check if OpenAI is configured."""
        return bool(self.openai_api_key)

    def redirect_uri(self, provider: str) -> str:
        """OAuth callback URL for a provider."""
        return f"{self.base_url.rstrip('/')}/auth/{provider}/callback"


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
