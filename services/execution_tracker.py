"""
============================================================================
Execution Tracker - Strategy Circuit Breaker
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Revenue and cost use decimal.Decimal

CIRCUIT BREAKER RULE:
    A strategy trips when its last `failure_threshold` (default 3) recorded
    outcomes all failed. Fewer outcomes than the threshold never trip.
    A trip clears the strategy's active flag through the registry and sends
    a critical notification. There is no automatic reset or retry; an
    operator must re-activate the strategy.

HISTORY:
    Outcomes are kept per strategy in recording order and grow without
    bound; only the tail matters to the breaker decision.

ERROR CODES:
    - STR-103: Circuit breaker tripped, strategy auto-paused

============================================================================
"""

from decimal import Decimal
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime
import logging
import threading

from app.observability.discord_notifier import get_discord_notifier
from app.observability.metrics import record_circuit_breaker_trip
from services.approval_config import DEFAULT_FAILURE_THRESHOLD
from services.approval_models import utc_now
from services.strategy_registry import StrategyRegistry

# Configure module logger
logger = logging.getLogger(__name__)


class ExecutionTrackerErrorCode:
    """Circuit breaker error codes for audit logging."""
    BREAKER_TRIPPED = "STR-103"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ExecutionOutcome:
    """Outcome of one strategy run, as consumed by the breaker."""

    strategy_id: str
    success: bool
    revenue: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy_id": self.strategy_id,
            "success": self.success,
            "revenue": str(self.revenue),
            "cost": str(self.cost),
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# ExecutionTracker Class
# =============================================================================

class ExecutionTracker:
    """
    Per-strategy outcome history and the consecutive-failure breaker.
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        notifier: Optional[Any] = None,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ) -> None:
        """
        Args:
            registry: Registry used to deactivate tripped strategies
            notifier: Object with send_critical() (default: DiscordNotifier)
            failure_threshold: Consecutive failures that trip the breaker

        Raises:
            ValueError: If failure_threshold is less than 1
        """
        if failure_threshold < 1:
            raise ValueError(
                f"failure_threshold must be at least 1, got: {failure_threshold}"
            )

        self._registry = registry
        self._notifier = notifier if notifier is not None else get_discord_notifier()
        self._failure_threshold = failure_threshold
        self._history: Dict[str, List[ExecutionOutcome]] = {}
        self._lock = threading.Lock()

        logger.info(
            f"[EXECUTION-TRACKER] Initialized | "
            f"failure_threshold={failure_threshold}"
        )

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    def record_outcome(self, strategy_id: str, outcome: ExecutionOutcome) -> None:
        """Append an outcome to the strategy's history."""
        with self._lock:
            self._history.setdefault(strategy_id, []).append(outcome)
            count = len(self._history[strategy_id])

        logger.debug(
            f"[EXECUTION-TRACKER] Outcome recorded | "
            f"strategy_id={strategy_id} | "
            f"success={outcome.success} | "
            f"history_length={count}"
        )

    def should_trip(self, strategy_id: str) -> bool:
        """True iff the last failure_threshold outcomes exist and all failed."""
        with self._lock:
            history = self._history.get(strategy_id, [])
            recent = history[-self._failure_threshold:]

        return (
            len(recent) >= self._failure_threshold
            and all(not outcome.success for outcome in recent)
        )

    def check_and_trip(
        self,
        strategy_id: str,
        strategy_name: Optional[str] = None,
    ) -> bool:
        """
        Run the breaker check for a strategy and act on a trip.

        Returns:
            True if the breaker tripped and the strategy was deactivated
        """
        if not self.should_trip(strategy_id):
            return False

        name = strategy_name or strategy_id
        reason = (
            f"Auto-paused after {self._failure_threshold} consecutive failures"
        )

        logger.warning(
            f"[{ExecutionTrackerErrorCode.BREAKER_TRIPPED}] "
            f"Circuit breaker tripped, auto-pausing strategy | "
            f"strategy_id={strategy_id} | "
            f"strategy_name={name} | "
            f"failure_threshold={self._failure_threshold}"
        )

        self._registry.deactivate_strategy(strategy_id, reason)
        record_circuit_breaker_trip()

        try:
            self._notifier.send_critical(
                "Strategy Auto-Paused",
                f"{name} failed {self._failure_threshold} times in a row and "
                f"was paused. Review and re-activate it manually.",
            )
        except Exception as e:
            logger.warning(
                f"[EXECUTION-TRACKER] Trip notification failed | "
                f"strategy_id={strategy_id} | error={e}"
            )

        return True

    def get_history(self, strategy_id: str) -> List[ExecutionOutcome]:
        """Copy of the strategy's outcomes in recording order."""
        with self._lock:
            return list(self._history.get(strategy_id, []))

    def clear_history(self, strategy_id: Optional[str] = None) -> None:
        """Forget one strategy's history, or all history when no id is given."""
        with self._lock:
            if strategy_id is not None:
                self._history.pop(strategy_id, None)
            else:
                self._history.clear()

        logger.info(
            f"[EXECUTION-TRACKER] History cleared | "
            f"strategy_id={strategy_id or 'ALL'}"
        )


__all__ = [
    "ExecutionOutcome",
    "ExecutionTracker",
    "ExecutionTrackerErrorCode",
]
