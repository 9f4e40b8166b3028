"""
============================================================================
Unit Tests - Approval Models and State Machine
============================================================================

Tests:
- ApprovalRequest expiry predicate
- Wire format (camelCase keys, int risk level, ISO timestamps)
- from_dict validation and legacy "Z" timestamps
- Transition table: pending is the only state with outbound transitions
============================================================================
"""

import os
import sys
from datetime import datetime, timezone, timedelta

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.approval_models import (
    ApprovalRequest,
    ApprovalStatus,
    generate_request_id,
)
from services.approval_state_machine import (
    ApprovalStateErrorCode,
    TERMINAL_STATES,
    get_valid_transitions,
    is_terminal_state,
    validate_transition,
)
from services.risk_policy import RiskLevel


CREATED = datetime(2024, 6, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def make_request(**overrides) -> ApprovalRequest:
    fields = dict(
        id="approval_1_abc",
        type="action",
        title="Publish article",
        description="Publish to the blog",
        risk_level=RiskLevel.HIGH,
        required_approvals=1,
        created_at=CREATED,
        expires_at=CREATED + timedelta(hours=1),
    )
    fields.update(overrides)
    return ApprovalRequest(**fields)


class TestApprovalRequest:

    def test_new_request_is_pending_with_empty_decisions(self) -> None:
        request = make_request()

        assert request.status == ApprovalStatus.PENDING.value
        assert request.approvals == []
        assert request.rejections == []

    def test_is_expired_at_and_after_expiry(self) -> None:
        request = make_request()

        assert request.is_expired(request.expires_at - timedelta(microseconds=1)) is False
        assert request.is_expired(request.expires_at) is True
        assert request.is_expired(request.expires_at + timedelta(days=1)) is True

    def test_decided_request_never_reports_expired(self) -> None:
        request = make_request(status=ApprovalStatus.APPROVED.value)

        assert request.is_expired(request.expires_at + timedelta(days=1)) is False

    def test_to_dict_uses_wire_format(self) -> None:
        data = make_request(metadata={"strategy_id": "s1"}).to_dict()

        assert data["riskLevel"] == 3
        assert data["requiredApprovals"] == 1
        assert data["createdAt"] == "2024-06-01T12:00:00.123456+00:00"
        assert data["status"] == "pending"
        assert data["metadata"] == {"strategy_id": "s1"}

    def test_from_dict_restores_every_field(self) -> None:
        original = make_request(
            approvals=["alice"],
            metadata={"k": "v"},
            risk_level=RiskLevel.CRITICAL,
            required_approvals=2,
        )

        restored = ApprovalRequest.from_dict(original.to_dict())

        assert restored == original

    def test_from_dict_accepts_z_suffix(self) -> None:
        data = make_request().to_dict()
        data["createdAt"] = "2024-06-01T12:00:00.000Z"

        restored = ApprovalRequest.from_dict(data)

        assert restored.created_at == datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def test_from_dict_rejects_unknown_status(self) -> None:
        data = make_request().to_dict()
        data["status"] = "maybe"

        with pytest.raises(ValueError):
            ApprovalRequest.from_dict(data)

    def test_from_dict_requires_id(self) -> None:
        data = make_request().to_dict()
        del data["id"]

        with pytest.raises(KeyError):
            ApprovalRequest.from_dict(data)


class TestGenerateRequestId:

    def test_prefix_and_uniqueness(self) -> None:
        ids = {generate_request_id() for _ in range(200)}

        assert len(ids) == 200
        assert all(i.startswith("approval_") for i in ids)


class TestStateMachine:

    @pytest.mark.parametrize("target", ["approved", "rejected", "expired"])
    def test_pending_can_reach_every_terminal_state(self, target) -> None:
        assert validate_transition("pending", target) == (True, None)

    @pytest.mark.parametrize("source", ["approved", "rejected", "expired"])
    @pytest.mark.parametrize("target", ["pending", "approved", "rejected", "expired"])
    def test_terminal_states_are_final(self, source, target) -> None:
        is_valid, error_code = validate_transition(source, target, "approval_x")

        assert is_valid is False
        assert error_code == ApprovalStateErrorCode.INVALID_TRANSITION

    def test_unknown_state_is_rejected(self) -> None:
        assert validate_transition("pending", "archived")[0] is False

    def test_terminal_helpers(self) -> None:
        assert set(TERMINAL_STATES) == {"approved", "rejected", "expired"}
        assert is_terminal_state("pending") is False
        assert get_valid_transitions("expired") == []
