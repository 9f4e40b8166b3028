"""
============================================================================
Prometheus Metrics - Approval Gate & Strategy Circuit Breaker
============================================================================

Reliability Level: L5 High
Input Constraints: Label values must be short, low-cardinality strings
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- approval_requests_total: Requests created, by risk level
- approval_auto_approved_total: Gating calls that proceeded immediately
- approval_decisions_total: Terminal transitions, by outcome
- strategy_executions_total: Strategy runs, by outcome
- strategy_circuit_breaker_trips_total: Strategies auto-paused

Every record_* helper swallows its own errors: metrics must never
change the outcome of a gate or runner operation.

============================================================================
"""

import logging

from prometheus_client import Counter

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

APPROVAL_REQUESTS_TOTAL = Counter(
    "approval_requests_total",
    "Total number of approval requests created",
    ["risk_level"]
)

APPROVAL_AUTO_APPROVED_TOTAL = Counter(
    "approval_auto_approved_total",
    "Total number of gated actions auto-approved by risk policy",
    ["risk_level"]
)

APPROVAL_DECISIONS_TOTAL = Counter(
    "approval_decisions_total",
    "Total number of approval requests reaching a terminal state",
    ["outcome"]
)

STRATEGY_EXECUTIONS_TOTAL = Counter(
    "strategy_executions_total",
    "Total number of strategy executions",
    ["strategy_type", "outcome"]
)

CIRCUIT_BREAKER_TRIPS_TOTAL = Counter(
    "strategy_circuit_breaker_trips_total",
    "Total number of strategies auto-paused after consecutive failures"
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_approval_requested(risk_level: str) -> None:
    try:
        APPROVAL_REQUESTS_TOTAL.labels(risk_level=risk_level).inc()
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record approval_requested metric | error=%s",
            str(e)
        )


def record_auto_approved(risk_level: str) -> None:
    try:
        APPROVAL_AUTO_APPROVED_TOTAL.labels(risk_level=risk_level).inc()
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record auto_approved metric | error=%s",
            str(e)
        )


def record_approval_decision(outcome: str, count: int = 1) -> None:
    """
    Record terminal transitions.

    Args:
        outcome: "approved", "rejected" or "expired"
        count: Number of requests that reached this outcome
    """
    try:
        APPROVAL_DECISIONS_TOTAL.labels(outcome=outcome).inc(count)
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to record approval_decision metric | error=%s",
            str(e)
        )


def record_strategy_execution(strategy_type: str, success: bool) -> None:
    try:
        STRATEGY_EXECUTIONS_TOTAL.labels(
            strategy_type=strategy_type,
            outcome="success" if success else "failure",
        ).inc()
    except Exception as e:
        logger.error(
            "[OBS-004] Failed to record strategy_execution metric | error=%s",
            str(e)
        )


def record_circuit_breaker_trip() -> None:
    try:
        CIRCUIT_BREAKER_TRIPS_TOTAL.inc()
    except Exception as e:
        logger.error(
            "[OBS-005] Failed to record circuit_breaker_trip metric | error=%s",
            str(e)
        )
