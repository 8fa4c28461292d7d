"""
Application Insights Telemetry Tracker

Ships custom events and exceptions to Azure Application Insights through the
opencensus log exporter when a connection string is configured. Every event
is also recorded in the development buffer.
"""

import logging
from typing import Any

from opencensus.ext.azure.log_exporter import AzureLogHandler

from .config import get_telemetry_config
from .context import get_request_context
from .dev_logger import configure_dev_logger, log_dev_event

_app_insights_logger: logging.Logger | None = None


def initialize_telemetry() -> logging.Logger | None:
    """
    Initialize Application Insights telemetry.

    Call this once at application startup.

    Returns:
        Logger instance if successful, None if disabled or connection string missing
    """
    global _app_insights_logger

    if _app_insights_logger is not None:
        return _app_insights_logger

    config = get_telemetry_config()
    configure_dev_logger(config.dev_logger_max_events)

    if not config.enabled:
        logging.info("[Telemetry] Telemetry disabled by configuration")
        return None

    if not config.app_insights_connection_string:
        logging.warning(
            "[Telemetry] No Application Insights connection string found. "
            "Events are kept in the dev buffer only."
        )
        return None

    try:
        logger = logging.getLogger("agent_booking_telemetry")
        logger.setLevel(logging.INFO)
        logger.propagate = False

        azure_handler = AzureLogHandler(connection_string=config.app_insights_connection_string)

        def add_identity(envelope):
            envelope.data.baseData.properties.update(get_request_context())
            envelope.data.baseData.properties["app_id"] = config.app_id
            envelope.data.baseData.properties["environment"] = config.environment
            return True

        azure_handler.add_telemetry_processor(add_identity)
        logger.addHandler(azure_handler)
        _app_insights_logger = logger

        logging.info("[Telemetry] Application Insights initialized successfully")
        return logger

    except Exception as e:
        logging.error(f"[Telemetry] Failed to initialize Application Insights: {e}")
        return None


def _merge(properties: dict[str, Any] | None) -> dict[str, Any]:
    config = get_telemetry_config()
    return {
        **get_request_context(),
        "app_id": config.app_id,
        "environment": config.environment,
        **(properties or {}),
    }


def track_event(name: str, properties: dict[str, Any] | None = None) -> None:
    """
    Track a custom event.

    Automatically includes the request context and app identity.

    Args:
        name: Event name (see TelemetryEvents)
        properties: Additional event properties
    """
    merged = _merge(properties)

    if get_telemetry_config().enable_dev_logger:
        log_dev_event(name, merged)

    if _app_insights_logger:
        _app_insights_logger.info(name, extra={"custom_dimensions": merged})


def track_exception(exception: BaseException, properties: dict[str, Any] | None = None) -> None:
    """
    Track an exception.

    Args:
        exception: Exception instance
        properties: Additional error properties
    """
    merged = _merge(
        {
            "error_type": type(exception).__name__,
            "error_message": str(exception),
            **(properties or {}),
        }
    )

    if get_telemetry_config().enable_dev_logger:
        log_dev_event("exception", merged)

    if _app_insights_logger:
        _app_insights_logger.error(
            f"Exception: {type(exception).__name__}",
            exc_info=exception,
            extra={"custom_dimensions": merged},
        )


def flush_telemetry() -> None:
    """Flush telemetry immediately (useful before application shutdown)."""
    if _app_insights_logger:
        for handler in _app_insights_logger.handlers:
            handler.flush()
