"""
============================================================================
Approval Request State Machine
============================================================================

Reliability Level: L6 Critical

APPROVAL REQUEST LIFECYCLE:
    pending → approved   (quorum of approvals reached)
    pending → rejected   (any single rejection; no quorum for vetoes)
    pending → expired    (now >= expires_at while still pending)

    Terminal States: approved, rejected, expired (no further transitions)

ERROR CODES:
    - APG-030: Invalid state transition attempted

============================================================================
"""

from typing import Optional, Dict, List, Tuple
import logging

from services.approval_models import ApprovalStatus

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ApprovalStateErrorCode:
    """State machine error codes for audit logging."""
    INVALID_TRANSITION = "APG-030"


# =============================================================================
# Transition Table
# =============================================================================

VALID_TRANSITIONS: Dict[str, List[str]] = {
    ApprovalStatus.PENDING.value: [
        ApprovalStatus.APPROVED.value,
        ApprovalStatus.REJECTED.value,
        ApprovalStatus.EXPIRED.value,
    ],
    ApprovalStatus.APPROVED.value: [],
    ApprovalStatus.REJECTED.value: [],
    ApprovalStatus.EXPIRED.value: [],
}

TERMINAL_STATES: List[str] = [
    state for state, targets in VALID_TRANSITIONS.items() if not targets
]

VALID_STATES: List[str] = list(VALID_TRANSITIONS.keys())


# =============================================================================
# validate_transition() Function
# =============================================================================

def validate_transition(
    current_state: str,
    target_state: str,
    request_id: Optional[str] = None
) -> Tuple[bool, Optional[str]]:
    """
    Validate if a status transition is allowed.

    Args:
        current_state: Current status of the request
        target_state: Status to transition to
        request_id: Optional request id for the log line

    Returns:
        (True, None) if the transition is valid,
        (False, "APG-030") otherwise
    """
    if current_state not in VALID_STATES or target_state not in VALID_STATES:
        logger.error(
            f"[{ApprovalStateErrorCode.INVALID_TRANSITION}] "
            f"Unknown status in transition: {current_state} → {target_state}. "
            f"Valid states: {VALID_STATES} | "
            f"request_id={request_id}"
        )
        return (False, ApprovalStateErrorCode.INVALID_TRANSITION)

    valid_targets = VALID_TRANSITIONS[current_state]

    if target_state not in valid_targets:
        valid_str = "/".join(valid_targets) if valid_targets else "NONE (terminal state)"
        logger.error(
            f"[{ApprovalStateErrorCode.INVALID_TRANSITION}] "
            f"Invalid status transition: {current_state} → {target_state}. "
            f"Valid transitions from {current_state}: {valid_str} | "
            f"request_id={request_id}"
        )
        return (False, ApprovalStateErrorCode.INVALID_TRANSITION)

    logger.debug(
        f"[APPROVAL-STATE] Transition validated: {current_state} → {target_state} | "
        f"request_id={request_id}"
    )
    return (True, None)


# =============================================================================
# Utility Functions
# =============================================================================

def get_valid_transitions(state: str) -> List[str]:
    """Valid target states from a given state (empty for terminal states)."""
    return VALID_TRANSITIONS.get(state, [])


def is_terminal_state(state: str) -> bool:
    return state in TERMINAL_STATES


def is_valid_state(state: str) -> bool:
    return state in VALID_STATES


__all__ = [
    "ApprovalStateErrorCode",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "VALID_STATES",
    "validate_transition",
    "get_valid_transitions",
    "is_terminal_state",
    "is_valid_state",
]
