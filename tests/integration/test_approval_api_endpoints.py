"""
============================================================================
Integration Test: Approval API Endpoints
============================================================================

Reliability Level: L6 Critical
Input Constraints: FastAPI TestClient against a real gate on tmp_path
Side Effects: Writes the request index under tmp_path

- Pending listing order and overdue exclusion
- 404 for unknown ids
- Approve/reject accepted flags, quorum and veto
- Cleanup sweep, health and metrics endpoints
============================================================================
"""

import os
import sys

import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.main import create_app
from services.approval_store import RequestStore
from services.risk_policy import RiskLevel


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def client(gate):
    app = create_app(gate=gate, start_worker=False)
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# Listing
# ============================================================================

class TestPendingEndpoint:

    def test_lists_pending_in_creation_order(self, client, gate, fake_clock) -> None:
        first = gate.create_request("First", "one", RiskLevel.HIGH)
        fake_clock.advance(1)
        second = gate.create_request("Second", "two", RiskLevel.CRITICAL)

        response = client.get("/api/approvals/pending")

        assert response.status_code == 200
        body = response.json()
        assert [item["id"] for item in body] == [first.id, second.id]
        assert body[1]["risk_level"] == 4
        assert body[1]["risk_level_name"] == "CRITICAL"
        assert body[1]["required_approvals"] == 2

    def test_excludes_overdue_requests(self, client, gate, fake_clock) -> None:
        gate.create_request("Short", "", RiskLevel.HIGH, timeout_seconds=10)
        fake_clock.advance(11)

        assert client.get("/api/approvals/pending").json() == []

    def test_seconds_remaining_follows_gate_clock(self, client, gate, fake_clock) -> None:
        request = gate.create_request("Publish", "", RiskLevel.HIGH, timeout_seconds=3600)
        fake_clock.advance(600)

        [listed] = client.get("/api/approvals/pending").json()
        single = client.get(f"/api/approvals/{request.id}").json()

        assert listed["seconds_remaining"] == 3000
        assert single["seconds_remaining"] == 3000

    def test_get_unknown_request_is_404(self, client) -> None:
        response = client.get("/api/approvals/approval_missing")

        assert response.status_code == 404
        assert "approval_missing" in response.json()["detail"]["message"]

    def test_get_request(self, client, gate) -> None:
        request = gate.create_request(
            "Publish", "post", RiskLevel.MEDIUM, metadata={"strategy_id": "s1"}
        )

        body = client.get(f"/api/approvals/{request.id}").json()

        assert body["status"] == "pending"
        assert body["metadata"] == {"strategy_id": "s1"}


# ============================================================================
# Decisions
# ============================================================================

class TestDecisionEndpoints:

    def test_approve_flow(self, client, gate) -> None:
        request = gate.create_request("Publish", "", RiskLevel.HIGH)

        response = client.post(
            f"/api/approvals/{request.id}/approve", json={"approved_by": "alice"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "id": request.id,
            "accepted": True,
            "status": "approved",
            "approvals": 1,
            "required_approvals": 1,
        }

        again = client.post(f"/api/approvals/{request.id}/approve", json={"approved_by": "bob"})
        assert again.json()["accepted"] is False

    def test_critical_needs_two_approvers(self, client, gate) -> None:
        request = gate.create_request("Wire funds", "", RiskLevel.CRITICAL)

        first = client.post(f"/api/approvals/{request.id}/approve", json={"approved_by": "alice"})
        duplicate = client.post(f"/api/approvals/{request.id}/approve", json={"approved_by": "alice"})
        second = client.post(f"/api/approvals/{request.id}/approve", json={"approved_by": "bob"})

        assert first.json()["status"] == "pending"
        assert duplicate.json()["accepted"] is False
        assert second.json()["status"] == "approved"

    def test_reject_flow(self, client, gate, mock_notifier) -> None:
        request = gate.create_request("Publish", "", RiskLevel.CRITICAL)
        client.post(f"/api/approvals/{request.id}/approve", json={"approved_by": "alice"})

        response = client.post(
            f"/api/approvals/{request.id}/reject",
            json={"rejected_by": "bob", "reason": "Off-brand"},
        )

        assert response.json()["accepted"] is True
        assert response.json()["status"] == "rejected"
        mock_notifier.send_error.assert_called_once_with("Rejected: Publish", "Off-brand")

    def test_decisions_on_unknown_id(self, client) -> None:
        approve = client.post("/api/approvals/nope/approve", json={})
        reject = client.post("/api/approvals/nope/reject", json={})

        assert approve.status_code == 200
        assert approve.json()["accepted"] is False
        assert approve.json()["status"] is None
        assert reject.json()["accepted"] is False

    def test_empty_approver_is_rejected_by_validation(self, client, gate) -> None:
        request = gate.create_request("Publish", "", RiskLevel.HIGH)

        response = client.post(f"/api/approvals/{request.id}/approve", json={"approved_by": ""})

        assert response.status_code == 422

    def test_late_approval_expires_request(self, client, gate, fake_clock) -> None:
        request = gate.create_request("Publish", "", RiskLevel.HIGH, timeout_seconds=5)
        fake_clock.advance(5)

        response = client.post(f"/api/approvals/{request.id}/approve", json={})

        assert response.json()["accepted"] is False
        assert response.json()["status"] == "expired"


# ============================================================================
# System Endpoints
# ============================================================================

class TestSystemEndpoints:

    def test_cleanup(self, client, gate, fake_clock, gate_config) -> None:
        overdue = gate.create_request("Old", "", RiskLevel.HIGH, timeout_seconds=1)
        gate.create_request("New", "", RiskLevel.HIGH)
        fake_clock.advance(2)

        assert client.post("/api/approvals/cleanup").json() == {"expired": 1}
        assert client.post("/api/approvals/cleanup").json() == {"expired": 0}
        assert RequestStore(gate_config.request_dir).load()[overdue.id].status == "expired"

    def test_health_reports_pending_count(self, client, gate) -> None:
        gate.create_request("Publish", "", RiskLevel.HIGH)

        assert client.get("/health").json() == {"status": "healthy", "pending_approvals": 1}

    def test_metrics_exposes_counters(self, client, gate) -> None:
        gate.create_request("Publish", "", RiskLevel.HIGH)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "approval_requests_total" in response.text
