"""
============================================================================
Strategy Registry - Strategy Records and Activation State
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Revenue and cost totals use decimal.Decimal

The registry is the Strategy Runner's and Execution Tracker's only view of
strategies:
- get_active_strategies(): ordered sequence of strategies to run
- record_execution(): accumulate per-strategy run statistics
- deactivate_strategy(): clear the active flag (circuit breaker trip)

InMemoryStrategyRegistry keeps strategies in process memory. Re-activation
(activate_strategy) is a manual operator action; nothing in the control
layer calls it.

ERROR CODES:
    - STR-104: Unknown strategy id

============================================================================
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
import threading

from services.approval_models import utc_now
from services.risk_policy import RiskLevel, RiskLevelLike, parse_risk_level

# Configure module logger
logger = logging.getLogger(__name__)


ZERO = Decimal("0")


class StrategyRegistryErrorCode:
    """Registry error codes for audit logging."""
    UNKNOWN_STRATEGY = "STR-104"


# =============================================================================
# Enums
# =============================================================================

class StrategyStatus(Enum):
    """
    Strategy lifecycle status.

    Only ACTIVE strategies are picked up by the runner.
    """
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class StrategyStats:
    """Accumulated execution statistics for one strategy."""

    executions: int = 0
    successes: int = 0
    failures: int = 0
    total_revenue: Decimal = ZERO
    total_cost: Decimal = ZERO
    last_executed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executions": self.executions,
            "successes": self.successes,
            "failures": self.failures,
            "total_revenue": str(self.total_revenue),
            "total_cost": str(self.total_cost),
            "last_executed_at": (
                self.last_executed_at.isoformat() if self.last_executed_at else None
            ),
        }


@dataclass
class Strategy:
    """
    Strategy record.

    type selects the executor; config is opaque to the control layer apart
    from the optional "stop_on_failure" flag read by executors.
    """

    id: str
    name: str
    type: str
    status: StrategyStatus = StrategyStatus.DRAFT
    risk_level: RiskLevel = RiskLevel.LOW
    config: Dict[str, Any] = field(default_factory=dict)
    stats: StrategyStats = field(default_factory=StrategyStats)
    paused_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == StrategyStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status.value,
            "risk_level": int(self.risk_level),
            "config": dict(self.config),
            "stats": self.stats.to_dict(),
            "paused_reason": self.paused_reason,
        }


# =============================================================================
# Registry Interface
# =============================================================================

class StrategyRegistry(ABC):
    """Interface the runner and the circuit breaker depend on."""

    @abstractmethod
    def get_active_strategies(self) -> List[Strategy]:
        """Active strategies in a stable order."""

    @abstractmethod
    def record_execution(
        self,
        strategy_id: str,
        success: bool,
        revenue: Decimal,
        cost: Decimal,
    ) -> None:
        """Accumulate the outcome of one run."""

    @abstractmethod
    def deactivate_strategy(self, strategy_id: str, reason: str) -> bool:
        """Clear the active flag. Returns False for an unknown id."""


# =============================================================================
# In-Memory Registry
# =============================================================================

class InMemoryStrategyRegistry(StrategyRegistry):
    """
    Ordered, thread-safe in-process registry.

    Strategies are returned in registration order.
    """

    def __init__(self, clock=None) -> None:
        self._strategies: Dict[str, Strategy] = {}
        self._lock = threading.RLock()
        self._clock = clock or utc_now

    def add_strategy(
        self,
        id: str,
        name: str,
        type: str,
        risk_level: RiskLevelLike = RiskLevel.LOW,
        config: Optional[Dict[str, Any]] = None,
        active: bool = True,
    ) -> Strategy:
        """Register a strategy, replacing any existing record with the same id."""
        strategy = Strategy(
            id=id,
            name=name,
            type=type,
            status=StrategyStatus.ACTIVE if active else StrategyStatus.DRAFT,
            risk_level=parse_risk_level(risk_level),
            config=dict(config or {}),
        )

        with self._lock:
            self._strategies[id] = strategy

        logger.info(
            f"[STRATEGY-REGISTRY] Strategy added | "
            f"id={id} | name={name} | type={type} | status={strategy.status.value}"
        )
        return strategy

    def get_strategy(self, strategy_id: str) -> Optional[Strategy]:
        with self._lock:
            return self._strategies.get(strategy_id)

    def get_all_strategies(self) -> List[Strategy]:
        with self._lock:
            return list(self._strategies.values())

    def get_active_strategies(self) -> List[Strategy]:
        with self._lock:
            return [s for s in self._strategies.values() if s.is_active]

    def record_execution(
        self,
        strategy_id: str,
        success: bool,
        revenue: Decimal = ZERO,
        cost: Decimal = ZERO,
    ) -> None:
        with self._lock:
            strategy = self._strategies.get(strategy_id)
            if strategy is None:
                logger.warning(
                    f"[{StrategyRegistryErrorCode.UNKNOWN_STRATEGY}] "
                    f"Execution recorded for unknown strategy | id={strategy_id}"
                )
                return

            stats = strategy.stats
            stats.executions += 1
            if success:
                stats.successes += 1
            else:
                stats.failures += 1
            stats.total_revenue += Decimal(revenue)
            stats.total_cost += Decimal(cost)
            stats.last_executed_at = self._clock()

        logger.debug(
            f"[STRATEGY-REGISTRY] Execution recorded | "
            f"id={strategy_id} | success={success} | "
            f"executions={stats.executions} | failures={stats.failures}"
        )

    def deactivate_strategy(self, strategy_id: str, reason: str) -> bool:
        with self._lock:
            strategy = self._strategies.get(strategy_id)
            if strategy is None:
                logger.warning(
                    f"[{StrategyRegistryErrorCode.UNKNOWN_STRATEGY}] "
                    f"Deactivation of unknown strategy | id={strategy_id}"
                )
                return False

            strategy.status = StrategyStatus.PAUSED
            strategy.paused_reason = reason

        logger.warning(
            f"[STRATEGY-REGISTRY] Strategy deactivated | "
            f"id={strategy_id} | reason={reason}"
        )
        return True

    def activate_strategy(self, strategy_id: str) -> bool:
        """Manual re-enable path after a breaker trip."""
        with self._lock:
            strategy = self._strategies.get(strategy_id)
            if strategy is None:
                logger.warning(
                    f"[{StrategyRegistryErrorCode.UNKNOWN_STRATEGY}] "
                    f"Activation of unknown strategy | id={strategy_id}"
                )
                return False

            strategy.status = StrategyStatus.ACTIVE
            strategy.paused_reason = None

        logger.info(f"[STRATEGY-REGISTRY] Strategy activated | id={strategy_id}")
        return True


__all__ = [
    "StrategyStatus",
    "StrategyStats",
    "Strategy",
    "StrategyRegistry",
    "InMemoryStrategyRegistry",
    "StrategyRegistryErrorCode",
]
