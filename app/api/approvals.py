"""
============================================================================
Approval Gate API Endpoints
============================================================================

Reliability Level: L6 Critical
Side Effects:
    - Approve/reject/cleanup mutate and persist the request index
    - Prometheus metrics updates via the gate

ENDPOINTS:
    GET  /api/approvals/pending          - List pending approval requests
    GET  /api/approvals/{id}             - Get one request (404 if unknown)
    POST /api/approvals/{id}/approve     - Record an approval
    POST /api/approvals/{id}/reject      - Record a rejection (veto)
    POST /api/approvals/cleanup          - Run the expiry sweep

BOOLEAN CONTRACT:
    Approving or rejecting an unknown or already-decided request is not
    an HTTP error. The response carries accepted=false and the current
    status (null for an unknown id).

============================================================================
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
import logging

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field

from services.approval_gate import ApprovalGate, get_approval_gate
from services.approval_models import ApprovalRequest

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# Router Configuration
# ============================================================================

router = APIRouter()


def get_gate() -> ApprovalGate:
    """Gate dependency; tests override it through app.dependency_overrides."""
    return get_approval_gate()


# ============================================================================
# Request/Response Models
# ============================================================================

class ApprovalRequestResponse(BaseModel):
    """One approval request as exposed to operators."""
    id: str
    type: str
    title: str
    description: str
    risk_level: int = Field(description="1=LOW, 2=MEDIUM, 3=HIGH, 4=CRITICAL")
    risk_level_name: str
    required_approvals: int
    approvals: List[str]
    rejections: List[str]
    created_at: str = Field(description="ISO format creation timestamp")
    expires_at: str = Field(description="ISO format expiry timestamp")
    status: str
    seconds_remaining: int = Field(description="Seconds until expiry (0 if past)")
    metadata: Optional[Dict[str, Any]] = None


class ApproveRequest(BaseModel):
    approved_by: str = Field(
        default="human",
        description="Identity of the approver",
        min_length=1
    )


class RejectRequest(BaseModel):
    rejected_by: str = Field(
        default="human",
        description="Identity of the rejecter",
        min_length=1
    )
    reason: Optional[str] = Field(
        default=None,
        description="Optional reason included in the notification"
    )


class DecisionResponse(BaseModel):
    """Outcome of an approve/reject call."""
    id: str
    accepted: bool = Field(description="False for unknown or already-decided requests")
    status: Optional[str] = Field(description="Status after the call; null if unknown")
    approvals: int = 0
    required_approvals: Optional[int] = None


class CleanupResponse(BaseModel):
    expired: int


def _to_response(request: ApprovalRequest, now: datetime) -> ApprovalRequestResponse:
    remaining = int((request.expires_at - now).total_seconds())
    return ApprovalRequestResponse(
        id=request.id,
        type=request.type,
        title=request.title,
        description=request.description,
        risk_level=int(request.risk_level),
        risk_level_name=request.risk_level.name,
        required_approvals=request.required_approvals,
        approvals=list(request.approvals),
        rejections=list(request.rejections),
        created_at=request.created_at.isoformat(),
        expires_at=request.expires_at.isoformat(),
        status=request.status,
        seconds_remaining=max(0, remaining),
        metadata=request.metadata,
    )


def _decision_response(gate: ApprovalGate, request_id: str, accepted: bool) -> DecisionResponse:
    request = gate.get_request(request_id)
    if request is None:
        return DecisionResponse(id=request_id, accepted=accepted, status=None)
    return DecisionResponse(
        id=request_id,
        accepted=accepted,
        status=request.status,
        approvals=len(request.approvals),
        required_approvals=request.required_approvals,
    )


# ============================================================================
# Endpoints
# ============================================================================

@router.get(
    "/pending",
    response_model=List[ApprovalRequestResponse],
    summary="Get Pending Approvals",
    description=(
        "Returns pending, non-expired approval requests ordered by creation time."
    ),
)
def get_pending_approvals(
    gate: ApprovalGate = Depends(get_gate)
) -> List[ApprovalRequestResponse]:
    pending = gate.get_pending_requests()
    logger.info(f"[APPROVAL-API] GET /pending | count={len(pending)}")
    now = gate.now()
    return [_to_response(request, now) for request in pending]


@router.post(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Expire Overdue Requests",
)
def cleanup_expired(gate: ApprovalGate = Depends(get_gate)) -> CleanupResponse:
    expired = gate.cleanup_expired()
    logger.info(f"[APPROVAL-API] POST /cleanup | expired={expired}")
    return CleanupResponse(expired=expired)


@router.get(
    "/{request_id}",
    response_model=ApprovalRequestResponse,
    summary="Get Approval Request",
    responses={404: {"description": "Unknown request id"}},
)
def get_approval_request(
    request_id: str,
    gate: ApprovalGate = Depends(get_gate)
) -> ApprovalRequestResponse:
    request = gate.get_request(request_id)
    if request is None:
        raise HTTPException(
            status_code=404,
            detail={
                "message": f"Approval request not found: {request_id}",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )
    return _to_response(request, gate.now())


@router.post(
    "/{request_id}/approve",
    response_model=DecisionResponse,
    summary="Approve Request",
)
def approve_request(
    request_id: str,
    body: ApproveRequest,
    gate: ApprovalGate = Depends(get_gate)
) -> DecisionResponse:
    accepted = gate.approve(request_id, approved_by=body.approved_by)
    logger.info(
        f"[APPROVAL-API] POST /approve | "
        f"id={request_id} | approved_by={body.approved_by} | accepted={accepted}"
    )
    return _decision_response(gate, request_id, accepted)


@router.post(
    "/{request_id}/reject",
    response_model=DecisionResponse,
    summary="Reject Request",
)
def reject_request(
    request_id: str,
    body: RejectRequest,
    gate: ApprovalGate = Depends(get_gate)
) -> DecisionResponse:
    accepted = gate.reject(
        request_id,
        rejected_by=body.rejected_by,
        reason=body.reason,
    )
    logger.info(
        f"[APPROVAL-API] POST /reject | "
        f"id={request_id} | rejected_by={body.rejected_by} | accepted={accepted}"
    )
    return _decision_response(gate, request_id, accepted)


__all__ = [
    "router",
    "get_gate",
    "ApprovalRequestResponse",
    "ApproveRequest",
    "RejectRequest",
    "DecisionResponse",
    "CleanupResponse",
]
