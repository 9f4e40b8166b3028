"""
============================================================================
Observability Module - Notifications and Prometheus Metrics
============================================================================
"""

from app.observability.discord_notifier import (
    AlertLevel,
    DiscordNotifier,
    NotificationResult,
    get_discord_notifier,
    reset_discord_notifier,
)

from app.observability.metrics import (
    APPROVAL_REQUESTS_TOTAL,
    APPROVAL_AUTO_APPROVED_TOTAL,
    APPROVAL_DECISIONS_TOTAL,
    STRATEGY_EXECUTIONS_TOTAL,
    CIRCUIT_BREAKER_TRIPS_TOTAL,
    record_approval_requested,
    record_auto_approved,
    record_approval_decision,
    record_strategy_execution,
    record_circuit_breaker_trip,
)

__all__ = [
    # Notifier
    "AlertLevel",
    "DiscordNotifier",
    "NotificationResult",
    "get_discord_notifier",
    "reset_discord_notifier",
    # Metrics
    "APPROVAL_REQUESTS_TOTAL",
    "APPROVAL_AUTO_APPROVED_TOTAL",
    "APPROVAL_DECISIONS_TOTAL",
    "STRATEGY_EXECUTIONS_TOTAL",
    "CIRCUIT_BREAKER_TRIPS_TOTAL",
    "record_approval_requested",
    "record_auto_approved",
    "record_approval_decision",
    "record_strategy_execution",
    "record_circuit_breaker_trip",
]
