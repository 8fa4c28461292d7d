"""Agent Booking API - points-gated, queued access to live AI agents."""

__version__ = "0.1.0"
