"""
============================================================================
Approval Gate - Human Oversight for Risky Actions
============================================================================

Reliability Level: L6 Critical
Traceability: Every request id appears in each log line that touches it

This module implements the Approval Gate state machine:
- Decide per risk level whether an action proceeds, waits, or expires
- Record approvals (quorum) and rejections (single veto)
- Lazily expire overdue requests on read/write, plus an explicit sweep
- Block a caller until a request is decided (wait_for_approval)
- Persist the full request set after every accepted mutation

CONCURRENCY MODEL:
    All request state is guarded by one reentrant lock. wait_for_approval
    waits on a Condition bound to that lock, so the lock is released while
    the caller is suspended and approvals/rejections from other threads
    proceed. Every mutation notifies waiters; the poll interval bounds how
    late a clock-driven expiry is noticed.

BOOLEAN CONTRACT:
    approve()/reject() return False for an unknown id and for a request
    that is no longer pending; callers cannot tell the two apart.

ERROR CODES:
    - APG-050: Notification delivery failed (logged, never raised)

============================================================================
"""

from typing import Optional, Dict, Any, List, Callable, Tuple
from datetime import datetime, timedelta
import logging
import threading
import time

from app.observability.discord_notifier import AlertLevel, get_discord_notifier
from app.observability.metrics import (
    record_approval_requested,
    record_auto_approved,
    record_approval_decision,
)
from services.approval_config import ApprovalGateConfig, get_approval_config
from services.approval_models import (
    ApprovalRequest,
    ApprovalStatus,
    Clock,
    generate_request_id,
    utc_now,
)
from services.approval_state_machine import validate_transition
from services.approval_store import RequestStore
from services.risk_policy import (
    RiskLevelLike,
    is_auto_approved,
    notification_severity,
    parse_risk_level,
    required_approvals,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ApprovalGateErrorCode:
    """Approval Gate error codes for audit logging."""
    NOTIFY_FAILED = "APG-050"


# A deferred notifier call: (method name, positional args)
_Notification = Tuple[str, tuple]


# =============================================================================
# ApprovalGate Class
# =============================================================================

class ApprovalGate:
    """
    Request-approval state machine.

    ============================================================================
    STATE MACHINE:
    ============================================================================
    pending → approved   approvals reach required_approvals
    pending → rejected   first rejection (veto, no quorum)
    pending → expired    now >= expires_at (lazy check or sweep)
    ============================================================================

    Low-risk actions (risk_level <= auto_approve_risk_level) never create a
    request: the caller proceeds immediately.
    """

    def __init__(
        self,
        config: Optional[ApprovalGateConfig] = None,
        store: Optional[RequestStore] = None,
        notifier: Optional[Any] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Initialize the gate and recover persisted requests.

        Args:
            config: Gate configuration (default: from environment)
            store: Request store (default: JSON index under config.request_dir)
            notifier: Object with send()/send_success()/send_error()
                (default: process-wide DiscordNotifier)
            clock: Callable returning the current aware datetime
        """
        self._config = config or get_approval_config(validate=False)
        self._store = store or RequestStore(self._config.request_dir)
        self._notifier = notifier if notifier is not None else get_discord_notifier()
        self._clock = clock or utc_now

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._requests: Dict[str, ApprovalRequest] = self._store.load()

        pending = sum(1 for r in self._requests.values() if r.is_pending)
        logger.info(
            f"[APPROVAL-GATE] Initialized | "
            f"recovered={len(self._requests)} | "
            f"pending={pending} | "
            f"auto_approve_risk_level={self._config.auto_approve_risk_level.name} | "
            f"default_timeout_seconds={self._config.default_timeout_seconds}"
        )

    @property
    def config(self) -> ApprovalGateConfig:
        return self._config

    def now(self) -> datetime:
        """Current time from the gate's clock."""
        return self._clock()

    # =========================================================================
    # Gating
    # =========================================================================

    def request_approval(
        self,
        title: str,
        description: str,
        risk_level: RiskLevelLike,
        type: str = "action",
        timeout_seconds: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Gate an action.

        Returns:
            True if the action may proceed immediately (auto-approved),
            False if a pending request was opened and the caller must
            wait or poll.
        """
        request = self.create_request(
            title=title,
            description=description,
            risk_level=risk_level,
            type=type,
            timeout_seconds=timeout_seconds,
            metadata=metadata,
        )
        return request is None

    def create_request(
        self,
        title: str,
        description: str,
        risk_level: RiskLevelLike,
        type: str = "action",
        timeout_seconds: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ApprovalRequest]:
        """
        Gate an action and return the opened request.

        Returns:
            None when the risk policy auto-approves the action,
            otherwise the new pending ApprovalRequest
        """
        level = parse_risk_level(risk_level)

        if is_auto_approved(level, self._config.auto_approve_risk_level):
            logger.info(
                f"[APPROVAL-GATE] Auto-approved low risk action | "
                f"title={title} | "
                f"risk_level={level.name} | "
                f"type={type}"
            )
            record_auto_approved(level.name)
            return None

        now = self._clock()
        timeout = (
            self._config.default_timeout_seconds
            if timeout_seconds is None else timeout_seconds
        )

        request = ApprovalRequest(
            id=generate_request_id(),
            type=type,
            title=title,
            description=description,
            risk_level=level,
            required_approvals=required_approvals(level),
            created_at=now,
            expires_at=now + timedelta(seconds=timeout),
            status=ApprovalStatus.PENDING.value,
            metadata=dict(metadata) if metadata is not None else None,
        )

        with self._changed:
            self._requests[request.id] = request
            self._persist()
            self._changed.notify_all()

        logger.info(
            f"[APPROVAL-GATE] Approval request created | "
            f"id={request.id} | "
            f"title={title} | "
            f"risk_level={level.name} | "
            f"required_approvals={request.required_approvals} | "
            f"expires_at={request.expires_at.isoformat()}"
        )
        record_approval_requested(level.name)

        self._dispatch([(
            "send",
            (
                notification_severity(level),
                f"Approval Request: {title}",
                description,
                [
                    {"name": "ID", "value": request.id, "inline": True},
                    {"name": "Risk Level", "value": f"Level {int(level)} ({level.name})", "inline": True},
                    {"name": "Type", "value": type, "inline": True},
                    {"name": "Required Approvals", "value": str(request.required_approvals), "inline": True},
                    {"name": "Expires At", "value": request.expires_at.isoformat(), "inline": False},
                ],
            ),
        )])

        return request

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve(self, request_id: str, approved_by: str = "human") -> bool:
        """
        Record an approval.

        A repeated approval from an identity already on the request is not
        counted toward the quorum and returns False.

        Returns:
            True if the approval was recorded, False otherwise
        """
        notifications: List[_Notification] = []

        with self._changed:
            request = self._get_pending(request_id, action="approve")
            if request is None:
                return False

            if approved_by in request.approvals:
                logger.info(
                    f"[APPROVAL-GATE] Duplicate approval ignored | "
                    f"id={request_id} | approved_by={approved_by}"
                )
                return False

            request.approvals.append(approved_by)

            if len(request.approvals) >= request.required_approvals:
                self._transition(request, ApprovalStatus.APPROVED)
                logger.info(
                    f"[APPROVAL-GATE] Request approved | "
                    f"id={request_id} | "
                    f"approved_by={approved_by} | "
                    f"approvals={len(request.approvals)}/{request.required_approvals}"
                )
                record_approval_decision(ApprovalStatus.APPROVED.value)
                notifications.append((
                    "send_success",
                    (f"Approved: {request.title}", f"Approved by: {approved_by}"),
                ))
            else:
                logger.info(
                    f"[APPROVAL-GATE] Approval recorded, quorum not reached | "
                    f"id={request_id} | "
                    f"approved_by={approved_by} | "
                    f"approvals={len(request.approvals)}/{request.required_approvals}"
                )

            self._persist()
            self._changed.notify_all()

        self._dispatch(notifications)
        return True

    def reject(
        self,
        request_id: str,
        rejected_by: str = "human",
        reason: Optional[str] = None,
    ) -> bool:
        """
        Record a rejection. Any single rejection is final.

        Returns:
            True if the rejection was recorded, False otherwise
        """
        with self._changed:
            request = self._get_pending(request_id, action="reject")
            if request is None:
                return False

            request.rejections.append(rejected_by)
            self._transition(request, ApprovalStatus.REJECTED)
            self._persist()
            self._changed.notify_all()

        logger.info(
            f"[APPROVAL-GATE] Request rejected | "
            f"id={request_id} | "
            f"rejected_by={rejected_by} | "
            f"prior_approvals={len(request.approvals)} | "
            f"reason={reason}"
        )
        record_approval_decision(ApprovalStatus.REJECTED.value)

        self._dispatch([(
            "send_error",
            (f"Rejected: {request.title}", reason or f"Rejected by: {rejected_by}"),
        )])
        return True

    # =========================================================================
    # Waiting
    # =========================================================================

    def wait_for_approval(
        self,
        request_id: str,
        poll_interval_seconds: Optional[float] = None,
        max_wait_seconds: Optional[float] = None,
    ) -> bool:
        """
        Block until the request leaves pending.

        Each poll performs the lazy expiry check; an overdue request is
        transitioned to expired and the wait resolves False.

        Args:
            request_id: Request to wait on
            poll_interval_seconds: Poll interval (default: from config)
            max_wait_seconds: Optional bound on the caller's wait. When it
                elapses the wait returns False and the request is left
                untouched.

        Returns:
            True only if the request ends up approved. Unknown ids,
            rejected and expired requests resolve False.
        """
        interval = (
            self._config.poll_interval_seconds
            if poll_interval_seconds is None else poll_interval_seconds
        )
        deadline = (
            time.monotonic() + max_wait_seconds
            if max_wait_seconds is not None else None
        )

        with self._changed:
            while True:
                request = self._requests.get(request_id)
                if request is None:
                    logger.debug(
                        f"[APPROVAL-GATE] Wait on unknown request | id={request_id}"
                    )
                    return False

                if request.status == ApprovalStatus.APPROVED.value:
                    return True

                if not request.is_pending:
                    return False

                if request.is_expired(self._clock()):
                    self._expire(request)
                    self._persist()
                    record_approval_decision(ApprovalStatus.EXPIRED.value)
                    self._changed.notify_all()
                    return False

                timeout = interval
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        logger.info(
                            f"[APPROVAL-GATE] Wait abandoned, request still pending | "
                            f"id={request_id} | max_wait_seconds={max_wait_seconds}"
                        )
                        return False
                    timeout = min(interval, remaining)

                self._changed.wait(timeout)

    # =========================================================================
    # Queries and Sweep
    # =========================================================================

    def get_pending_requests(self) -> List[ApprovalRequest]:
        """
        Pending, not-yet-expired requests ordered by creation time.

        Overdue requests are excluded even if no sweep has run yet.
        """
        now = self._clock()
        with self._lock:
            pending = [
                r for r in self._requests.values()
                if r.is_pending and not r.is_expired(now)
            ]
        return sorted(pending, key=lambda r: r.created_at)

    def get_request(self, request_id: str) -> Optional[ApprovalRequest]:
        with self._lock:
            return self._requests.get(request_id)

    def get_all_requests(self) -> List[ApprovalRequest]:
        with self._lock:
            return list(self._requests.values())

    def cleanup_expired(self) -> int:
        """
        Transition every overdue pending request to expired.

        Persists once when anything changed.

        Returns:
            Number of requests expired by this sweep
        """
        now = self._clock()

        with self._changed:
            expired = [r for r in self._requests.values() if r.is_expired(now)]
            for request in expired:
                self._expire(request)

            if expired:
                self._persist()
                self._changed.notify_all()

        if expired:
            logger.info(
                f"[APPROVAL-GATE] Cleaned up expired requests | "
                f"count={len(expired)} | "
                f"ids={[r.id for r in expired]}"
            )
            record_approval_decision(ApprovalStatus.EXPIRED.value, len(expired))

        return len(expired)

    # =========================================================================
    # Internals
    # =========================================================================

    def _get_pending(self, request_id: str, action: str) -> Optional[ApprovalRequest]:
        """
        Look up a request that can still be decided. Caller holds the lock.

        An overdue request is expired here, so a late decision cannot
        resurrect it.
        """
        request = self._requests.get(request_id)

        if request is None:
            logger.info(
                f"[APPROVAL-GATE] {action} ignored, unknown request | id={request_id}"
            )
            return None

        if request.is_expired(self._clock()):
            self._expire(request)
            self._persist()
            record_approval_decision(ApprovalStatus.EXPIRED.value)
            self._changed.notify_all()

        if not request.is_pending:
            logger.info(
                f"[APPROVAL-GATE] {action} ignored, request not pending | "
                f"id={request_id} | status={request.status}"
            )
            return None

        return request

    def _transition(self, request: ApprovalRequest, target: ApprovalStatus) -> bool:
        is_valid, _ = validate_transition(request.status, target.value, request.id)
        if is_valid:
            request.status = target.value
        return is_valid

    def _expire(self, request: ApprovalRequest) -> None:
        if self._transition(request, ApprovalStatus.EXPIRED):
            logger.info(
                f"[APPROVAL-GATE] Request expired | "
                f"id={request.id} | "
                f"expires_at={request.expires_at.isoformat()} | "
                f"approvals={len(request.approvals)}/{request.required_approvals}"
            )

    def _persist(self) -> None:
        # Failures are logged by the store; memory stays authoritative
        self._store.save_all(self._requests)

    def _dispatch(self, notifications: List[_Notification]) -> None:
        for method_name, args in notifications:
            try:
                getattr(self._notifier, method_name)(*args)
            except Exception as e:
                logger.warning(
                    f"[{ApprovalGateErrorCode.NOTIFY_FAILED}] "
                    f"Notification failed | method={method_name} | error={e}"
                )


# =============================================================================
# Process-wide Default Instance
# =============================================================================

_gate_instance: Optional[ApprovalGate] = None


def get_approval_gate(config: Optional[ApprovalGateConfig] = None) -> ApprovalGate:
    """
    Get the process-wide ApprovalGate, creating it on first call.

    The composition root may instead construct and pass gates explicitly.
    """
    global _gate_instance

    if _gate_instance is None:
        _gate_instance = ApprovalGate(config=config)

    return _gate_instance


def set_approval_gate(gate: Optional[ApprovalGate]) -> None:
    """Install an explicitly constructed gate as the process default."""
    global _gate_instance
    _gate_instance = gate


def reset_approval_gate() -> None:
    """Drop the process-wide instance (used by tests)."""
    set_approval_gate(None)


__all__ = [
    "ApprovalGate",
    "ApprovalGateErrorCode",
    "get_approval_gate",
    "set_approval_gate",
    "reset_approval_gate",
]
