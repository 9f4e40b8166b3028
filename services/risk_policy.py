"""
============================================================================
Risk Policy - Auto-Approval and Quorum Rules
============================================================================

Reliability Level: L6 Critical
Input Constraints: Risk levels are RiskLevel members or their int/name forms
Side Effects: None (pure functions)

RISK LEVELS (ordered):
    LOW (1) < MEDIUM (2) < HIGH (3) < CRITICAL (4)

POLICY:
    - risk_level <= auto-approve threshold  -> proceed immediately
    - risk_level >= CRITICAL                -> 2 independent approvals
    - otherwise                             -> 1 approval

============================================================================
"""

from enum import IntEnum
from typing import Union

from app.observability.discord_notifier import AlertLevel


# =============================================================================
# Constants
# =============================================================================

DEFAULT_REQUIRED_APPROVALS = 1
CRITICAL_REQUIRED_APPROVALS = 2


# =============================================================================
# Enums
# =============================================================================

class RiskLevel(IntEnum):
    """Ordered classification of an action's potential harm."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


RiskLevelLike = Union[RiskLevel, int, str]


# =============================================================================
# Policy Functions
# =============================================================================

def parse_risk_level(value: RiskLevelLike) -> RiskLevel:
    """
    Coerce an enum member, integer, or name into a RiskLevel.

    Args:
        value: RiskLevel, 1-4, or a case-insensitive name ("high")

    Returns:
        RiskLevel member

    Raises:
        ValueError: If the value does not name a known risk level
    """
    if isinstance(value, RiskLevel):
        return value

    if isinstance(value, bool):
        raise ValueError(f"Invalid risk level: {value!r}")

    if isinstance(value, int):
        return RiskLevel(value)

    text = str(value).strip()
    if text.isdigit():
        return RiskLevel(int(text))

    try:
        return RiskLevel[text.upper()]
    except KeyError:
        raise ValueError(
            f"Invalid risk level: {value!r}. "
            f"Valid levels: {[level.name for level in RiskLevel]}"
        )


def is_auto_approved(risk_level: RiskLevelLike, threshold: RiskLevelLike) -> bool:
    """True when the action may proceed without a human decision."""
    return parse_risk_level(risk_level) <= parse_risk_level(threshold)


def required_approvals(risk_level: RiskLevelLike) -> int:
    """Quorum size, fixed at request creation."""
    if parse_risk_level(risk_level) >= RiskLevel.CRITICAL:
        return CRITICAL_REQUIRED_APPROVALS
    return DEFAULT_REQUIRED_APPROVALS


def notification_severity(risk_level: RiskLevelLike) -> AlertLevel:
    """Severity of the notification sent when a request is opened."""
    if parse_risk_level(risk_level) >= RiskLevel.CRITICAL:
        return AlertLevel.CRITICAL
    return AlertLevel.WARNING


__all__ = [
    "RiskLevel",
    "RiskLevelLike",
    "DEFAULT_REQUIRED_APPROVALS",
    "CRITICAL_REQUIRED_APPROVALS",
    "parse_risk_level",
    "is_auto_approved",
    "required_approvals",
    "notification_severity",
]
