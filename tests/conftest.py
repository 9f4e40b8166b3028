"""
============================================================================
Shared Test Fixtures - Approval Gate
============================================================================

Deterministic time for every time-dependent component is provided by
FakeClock; request indexes live under pytest's tmp_path.
============================================================================
"""

import os
import sys
from datetime import datetime, timezone, timedelta
from unittest.mock import Mock

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.observability.discord_notifier import reset_discord_notifier
from services.approval_config import ApprovalGateConfig, reset_approval_config
from services.approval_gate import ApprovalGate, reset_approval_gate
from services.approval_store import RequestStore
from services.risk_policy import RiskLevel


START_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_notifier() -> Mock:
    """Notifier double exposing send() and the convenience methods."""
    notifier = Mock()
    notifier.send = Mock()
    notifier.send_success = Mock()
    notifier.send_info = Mock()
    notifier.send_warning = Mock()
    notifier.send_error = Mock()
    notifier.send_critical = Mock()
    return notifier


@pytest.fixture
def gate_config(tmp_path) -> ApprovalGateConfig:
    return ApprovalGateConfig(
        request_dir=str(tmp_path / "approvals"),
        default_timeout_seconds=3600,
        auto_approve_risk_level=RiskLevel.LOW,
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def store(gate_config) -> RequestStore:
    return RequestStore(gate_config.request_dir)


@pytest.fixture
def gate(gate_config, store, mock_notifier, fake_clock) -> ApprovalGate:
    return ApprovalGate(
        config=gate_config,
        store=store,
        notifier=mock_notifier,
        clock=fake_clock,
    )


@pytest.fixture(autouse=True)
def _reset_singletons():
    yield
    reset_approval_gate()
    reset_approval_config()
    reset_discord_notifier()
