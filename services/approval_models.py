"""
============================================================================
Approval Gate - Core Data Models
============================================================================

Reliability Level: L6 Critical
Traceability: Every request carries an opaque, immutable id

This module defines the core data models for the Approval Gate:
- ApprovalStatus: pending | approved | rejected | expired
- ApprovalRequest: approval request record and its wire format
- ApprovalJSONEncoder: datetime/Enum aware JSON encoder
- utc_now / generate_request_id: clock and id helpers

PERSISTED FORMAT:
    The request index is a JSON array of objects using the camelCase field
    names below. Timestamps are ISO-8601 strings with microsecond precision
    and are re-parsed to timezone-aware datetimes on load.

============================================================================
"""

from typing import Optional, Dict, Any, List, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
import json
import logging
import time
import uuid

from services.risk_policy import RiskLevel, parse_risk_level

# Configure module logger
logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


# =============================================================================
# Enums
# =============================================================================

class ApprovalStatus(Enum):
    """
    Approval request status.

    pending is the only non-terminal state.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


# =============================================================================
# Helpers
# =============================================================================

def utc_now() -> datetime:
    """Default wall clock. Components accept a replacement for tests."""
    return datetime.now(timezone.utc)


def generate_request_id(prefix: str = "approval") -> str:
    """Opaque unique id, e.g. approval_1718000000000_3f9a2c1b."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        # JavaScript-style "Z" suffix from older index files
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ApprovalJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for approval data types.

    Handles:
    - datetime -> ISO format string
    - Decimal -> string (preserves precision)
    - Enum -> value
    - UUID -> str
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, uuid.UUID):
            return str(obj)
        return super().default(obj)


# =============================================================================
# ApprovalRequest Dataclass
# =============================================================================

@dataclass
class ApprovalRequest:
    """
    Approval request record.

    ============================================================================
    FIELDS:
    ============================================================================
    - id: Opaque unique identifier (immutable)
    - type / title / description: What is being gated (immutable)
    - risk_level: RiskLevel of the gated action (immutable)
    - required_approvals: Quorum fixed at creation (2 for CRITICAL, else 1)
    - approvals / rejections: Approver identities, append-only while pending
    - created_at / expires_at: expires_at = created_at + timeout (fixed)
    - status: pending | approved | rejected | expired
    - metadata: Opaque caller payload (immutable)
    ============================================================================

    Only the Approval Gate mutates approvals, rejections and status.
    """

    id: str
    type: str
    title: str
    description: str
    risk_level: RiskLevel
    required_approvals: int
    created_at: datetime
    expires_at: datetime
    status: str = ApprovalStatus.PENDING.value
    approvals: List[str] = field(default_factory=list)
    rejections: List[str] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING.value

    def is_expired(self, now: datetime) -> bool:
        """True when still pending but past its expiry time."""
        return self.is_pending and now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted wire format."""
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "riskLevel": int(self.risk_level),
            "requiredApprovals": self.required_approvals,
            "approvals": list(self.approvals),
            "rejections": list(self.rejections),
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "status": self.status,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalRequest":
        """
        Rebuild a request from its persisted form.

        Raises:
            KeyError / ValueError / TypeError: On a malformed record
        """
        status = str(data["status"])
        # Validates the value against the enum
        ApprovalStatus(status)

        return cls(
            id=str(data["id"]),
            type=str(data.get("type", "action")),
            title=str(data["title"]),
            description=str(data.get("description", "")),
            risk_level=parse_risk_level(data["riskLevel"]),
            required_approvals=int(data["requiredApprovals"]),
            created_at=_parse_timestamp(data["createdAt"]),
            expires_at=_parse_timestamp(data["expiresAt"]),
            status=status,
            approvals=[str(a) for a in data.get("approvals") or []],
            rejections=[str(r) for r in data.get("rejections") or []],
            metadata=data.get("metadata"),
        )


__all__ = [
    "Clock",
    "ApprovalStatus",
    "ApprovalRequest",
    "ApprovalJSONEncoder",
    "utc_now",
    "generate_request_id",
]
