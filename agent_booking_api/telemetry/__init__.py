"""
Telemetry Module

Central export point for all telemetry functionality.
"""

from .config import TelemetryConfig, get_telemetry_config
from .context import (
    clear_request_context,
    generate_correlation_id,
    get_request_context,
    set_request_context,
)
from .dev_logger import clear_dev_logs, export_dev_logs, get_dev_logs
from .events import TelemetryEvents
from .middleware import TelemetryMiddleware
from .tracker import flush_telemetry, initialize_telemetry, track_event, track_exception

__all__ = [
    "TelemetryConfig",
    "get_telemetry_config",
    "get_request_context",
    "set_request_context",
    "clear_request_context",
    "generate_correlation_id",
    "TelemetryEvents",
    "initialize_telemetry",
    "track_event",
    "track_exception",
    "flush_telemetry",
    "get_dev_logs",
    "export_dev_logs",
    "clear_dev_logs",
    "TelemetryMiddleware",
]
