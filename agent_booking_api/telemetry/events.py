"""
Telemetry Event Names

Naming convention: {entity}_{action}.
"""


class TelemetryEvents:
    """Centralized telemetry event names."""

    # Request lifecycle
    REQUEST_RECEIVED = "request_received"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_FAILED = "request_failed"

    # Session lifecycle
    SESSION_BOOKED = "session_booked"
    SESSION_QUEUED = "session_queued"
    SESSION_STARTED = "session_started"
    SESSION_WARNED = "session_warned"
    SESSION_ENDED = "session_ended"
    SESSION_CANCELLED = "session_cancelled"
    SESSION_BOOKING_REJECTED = "session_booking_rejected"
    SESSION_RECOVERED = "session_recovered"
    SESSION_TIMER_FAILED = "session_timer_failed"
    SESSION_COMPENSATION_FAILED = "session_compensation_failed"

    # Agent chat
    COMMENT_CREATED = "comment_created"
    COMMENTS_MARKED_READ = "comments_marked_read"
    AGENT_RESPONSE_RECORDED = "agent_response_recorded"

    # Points economy
    POINTS_SPENT = "points_spent"
    POINTS_EARNED = "points_earned"
    POINTS_REGENERATED = "points_regenerated"
    POINTS_REJECTED = "points_rejected"
    REGENERATION_SWEEP_COMPLETED = "regeneration_sweep_completed"

    # Security
    AUTHENTICATION_FAILED = "authentication_failed"

    # Application lifecycle
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"
