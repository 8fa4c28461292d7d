"""Application configuration using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service settings
    service_host: str = Field(default="0.0.0.0", description="Host to bind the service")
    service_port: int = Field(default=6969, description="Port to bind the service")
    log_level: str = Field(default="info", description="Logging level")

    # Storage
    database_backend: str = Field(
        default="postgres",
        description="Record store backend: postgres or memory",
    )
    database_url: str | None = Field(
        default=None,
        description="Full database connection URL (overrides individual fields)",
    )
    database_user: str = Field(default="agent_booking", description="Database username")
    database_password: str = Field(default="dev_password", description="Database password")
    database_host: str = Field(default="localhost", description="Database host")
    database_port: int = Field(default=5432, description="Database port")
    database_name: str = Field(default="agent_booking", description="Database name")
    database_pool_min_size: int = Field(default=2, description="Minimum pool size")
    database_pool_max_size: int = Field(default=10, description="Maximum pool size")
    database_ssl_mode: str = Field(
        default="prefer",
        description="SSL mode: disable, prefer, require",
    )

    # Security
    secret_key: str = Field(
        default="development-secret-key-change-in-production",
        description="Secret key for HS256 JWT verification",
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm (HS256 or RS256)")
    jwt_issuer: str | None = Field(default=None, description="Expected JWT issuer (iss claim)")
    jwt_audience: str | None = Field(default=None, description="Expected JWT audience (aud claim)")

    # Authentication
    auth_required: bool = Field(
        default=False,
        description="Require a Bearer JWT (set to True for production)",
    )
    dev_user_header: str = Field(
        default="X-User-ID",
        description="Header carrying the caller id when auth is disabled",
    )

    # CORS
    allowed_origins: str = Field(
        default="*",
        description="Allowed CORS origins (comma-separated)",
    )

    def get_allowed_origins(self) -> list[str]:
        """Get allowed origins as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    # Session policy
    session_duration_minutes: float = Field(
        default=5.0, gt=0, description="Default length of a private session"
    )
    warning_window_minutes: float = Field(
        default=0.5, ge=0, description="How long before the end the warning fires"
    )
    wait_minutes_per_person: int = Field(
        default=5, ge=0, description="Estimated wait per queued person ahead"
    )
    private_session_cost: int = Field(
        default=10, ge=0, description="Points charged for a private session"
    )
    max_session_duration_minutes: float = Field(
        default=30.0, gt=0, description="Upper bound for a requested duration"
    )
    free_agent_id: str | None = Field(
        default=None,
        description="Agent that bypasses the points economy entirely",
    )

    # Points economy
    initial_points: int = Field(default=100, ge=0, description="Balance of a new user")
    max_points: int = Field(default=100, ge=0, description="Regeneration cap")
    daily_regen_amount: int = Field(default=20, gt=0, description="Points added per regeneration")
    regen_interval_seconds: float = Field(
        default=60.0, gt=0, description="How often the regeneration sweep runs"
    )
    regen_period_hours: float = Field(
        default=24.0, gt=0, description="Time between two regenerations of one user"
    )

    # Notifications
    notification_queue_size: int = Field(
        default=100, gt=0, description="Buffered events per connected subscriber"
    )

    # Agent chat
    unread_comment_window_minutes: float = Field(
        default=15.0, gt=0, description="How far back an agent looks for unread comments"
    )
    max_comment_length: int = Field(default=500, gt=0, description="Longest accepted comment")

    def get_database_url(self) -> str:
        """
        Get PostgreSQL connection URL.

        If database_url is set, use it directly.
        Otherwise, construct from individual components.
        """
        from urllib.parse import quote_plus

        if self.database_url:
            return self.database_url

        user = quote_plus(self.database_user)
        password = quote_plus(self.database_password)

        ssl_param = ""
        if self.database_ssl_mode in ("require", "prefer"):
            ssl_param = f"?sslmode={self.database_ssl_mode}"

        return (
            f"postgresql://{user}:{password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}{ssl_param}"
        )


# Global settings instance
settings = Settings()
