"""
Telemetry Configuration

Connection, identity and dev-buffer settings for request and domain telemetry.
"""

from pydantic_settings import BaseSettings


class TelemetryConfig(BaseSettings):
    """Telemetry configuration loaded from TELEMETRY_* environment variables."""

    # Connection
    app_insights_connection_string: str | None = None
    enabled: bool = True

    # Application identity, attached to every event
    app_id: str = "agent-booking-api"
    environment: str = "development"

    # Development buffer
    enable_dev_logger: bool = True
    dev_logger_max_events: int = 1000

    model_config = {
        "env_prefix": "TELEMETRY_",
        "env_file": ".env",
        "extra": "ignore",
    }


_config: TelemetryConfig | None = None


def get_telemetry_config() -> TelemetryConfig:
    """Get the global telemetry configuration instance."""
    global _config
    if _config is None:
        _config = TelemetryConfig()
    return _config
