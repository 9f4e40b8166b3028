"""
============================================================================
Unit Tests - Approval Expiry Worker and Sweep Job
============================================================================

Tests:
- ExpiryWorker initialization and interval validation
- process_expired() delegates to the gate's sweep
- start()/stop() lifecycle on an asyncio loop
- jobs.approval_sweep one-shot CLI
============================================================================
"""

import asyncio
import os
import sys
from datetime import datetime, timezone, timedelta
from unittest.mock import Mock

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from jobs.approval_sweep import main as sweep_main
from services.approval_expiry_worker import ExpiryWorker
from services.approval_gate import ApprovalGate
from services.approval_models import ApprovalStatus
from services.approval_store import RequestStore
from services.risk_policy import RiskLevel


class TestExpiryWorkerInit:

    def test_default_interval(self) -> None:
        worker = ExpiryWorker(Mock())

        assert worker.interval_seconds == 60
        assert worker.is_running is False

    @pytest.mark.parametrize("interval", [0, -1])
    def test_rejects_non_positive_interval(self, interval) -> None:
        with pytest.raises(ValueError, match="must be positive"):
            ExpiryWorker(Mock(), interval_seconds=interval)


class TestProcessExpired:

    def test_returns_sweep_count(self) -> None:
        gate = Mock()
        gate.cleanup_expired.return_value = 3

        assert ExpiryWorker(gate).process_expired() == 3
        gate.cleanup_expired.assert_called_once_with()

    def test_expires_overdue_requests(self, gate, fake_clock) -> None:
        request = gate.create_request("Spend", "", RiskLevel.HIGH, timeout_seconds=5)
        fake_clock.advance(6)

        assert ExpiryWorker(gate).process_expired() == 1
        assert request.status == ApprovalStatus.EXPIRED.value


class TestLifecycle:

    def test_start_runs_sweep_and_stop_cancels(self) -> None:
        gate = Mock()
        gate.cleanup_expired.return_value = 0
        worker = ExpiryWorker(gate, interval_seconds=3600)

        async def scenario() -> None:
            await worker.start()
            assert worker.is_running is True
            await asyncio.sleep(0.05)
            await worker.stop()

        asyncio.run(scenario())

        assert worker.is_running is False
        gate.cleanup_expired.assert_called_once()

    def test_sweep_errors_do_not_stop_loop(self) -> None:
        gate = Mock()
        gate.cleanup_expired.side_effect = [RuntimeError("disk"), 0, 0, 0, 0]
        worker = ExpiryWorker(gate, interval_seconds=1)

        async def scenario() -> None:
            await worker.start()
            await asyncio.sleep(1.2)
            assert worker.is_running is True
            await worker.stop()

        asyncio.run(scenario())

        assert gate.cleanup_expired.call_count >= 2

    def test_stop_when_not_running_is_noop(self) -> None:
        worker = ExpiryWorker(Mock())

        asyncio.run(worker.stop())

        assert worker.is_running is False


class TestSweepJob:

    def test_cli_expires_persisted_requests(self, tmp_path, monkeypatch, capsys) -> None:
        monkeypatch.setenv("DISCORD_NOTIFICATIONS_ENABLED", "false")
        request_dir = str(tmp_path / "approvals")
        past = datetime.now(timezone.utc) - timedelta(hours=2)

        seeded = ApprovalGate(
            store=RequestStore(request_dir),
            notifier=Mock(),
            clock=lambda: past,
        )
        overdue = seeded.create_request("Old", "", RiskLevel.HIGH, timeout_seconds=60)
        fresh = seeded.create_request("New", "", RiskLevel.HIGH, timeout_seconds=86400)

        exit_code = sweep_main(["--request-dir", request_dir, "--list-pending"])

        assert exit_code == 0
        assert "expired=1" in capsys.readouterr().out
        persisted = RequestStore(request_dir).load()
        assert persisted[overdue.id].status == "expired"
        assert persisted[fresh.id].status == "pending"
