"""
============================================================================
Strategy Runner - Executes Active Strategies
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Revenue and cost totals use decimal.Decimal

RUN PROCEDURE (per strategy):
    1. Select the first registered executor whose supported types match
    2. Execute (any exception becomes a failed ExecutionResult)
    3. registry.record_execution()
    4. tracker.record_outcome() then tracker.check_and_trip()
    5. Notify: success with revenue → success; failure → warning

BATCH ISOLATION:
    execute_all_active() runs strategies sequentially and always returns a
    result for every active strategy; one failure never aborts the batch.

ERROR CODES:
    - STR-101: Executor raised during execution
    - STR-102: No executor registered for the strategy type

============================================================================
"""

from decimal import Decimal
from typing import Optional, Dict, Any, List, Iterable
from dataclasses import dataclass
import logging

from app.observability.discord_notifier import get_discord_notifier
from app.observability.metrics import record_strategy_execution
from services.execution_tracker import ExecutionOutcome, ExecutionTracker
from services.strategy_executors import (
    BaseExecutor,
    ExecutionResult,
    ExecutorErrorCode,
)
from services.strategy_registry import Strategy, StrategyRegistry

# Configure module logger
logger = logging.getLogger(__name__)


ZERO = Decimal("0")


class StrategyRunnerErrorCode:
    """Runner error codes for audit logging."""
    EXECUTOR_FAILED = ExecutorErrorCode.EXECUTION_FAILED
    NO_EXECUTOR = "STR-102"


# =============================================================================
# Run Summary
# =============================================================================

@dataclass
class RunSummary:
    """Aggregate of one execute_all_active() cycle."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    total_revenue: Decimal = ZERO
    total_cost: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total_revenue": str(self.total_revenue),
            "total_cost": str(self.total_cost),
        }


def summarize(results: Dict[str, ExecutionResult]) -> RunSummary:
    """Count successes and sum money over a batch of results."""
    summary = RunSummary(total=len(results))
    for result in results.values():
        if result.success:
            summary.succeeded += 1
        else:
            summary.failed += 1
        summary.total_revenue += result.total_revenue
        summary.total_cost += result.total_cost
    return summary


# =============================================================================
# StrategyRunner Class
# =============================================================================

class StrategyRunner:
    """
    Composition point between registry, executors, tracker and notifier.
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        tracker: ExecutionTracker,
        notifier: Optional[Any] = None,
        executors: Optional[Iterable[BaseExecutor]] = None,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._notifier = notifier if notifier is not None else get_discord_notifier()
        self._executors: List[BaseExecutor] = []

        for executor in executors or []:
            self.register_executor(executor)

        logger.info(
            f"[STRATEGY-RUNNER] Initialized | "
            f"executor_count={len(self._executors)} | "
            f"supported_types={self.get_supported_types()}"
        )

    # =========================================================================
    # Executor Registration
    # =========================================================================

    def register_executor(self, executor: BaseExecutor) -> None:
        self._executors.append(executor)
        logger.info(
            f"[STRATEGY-RUNNER] Executor registered | "
            f"executor={type(executor).__name__} | "
            f"supported_types={list(executor.supported_types)}"
        )

    def get_supported_types(self) -> List[str]:
        """Distinct supported types in registration order."""
        types: List[str] = []
        for executor in self._executors:
            for strategy_type in executor.supported_types:
                if strategy_type not in types:
                    types.append(strategy_type)
        return types

    def find_executor(self, strategy: Strategy) -> Optional[BaseExecutor]:
        """First registered executor that can run the strategy."""
        for executor in self._executors:
            if executor.can_execute(strategy):
                return executor
        return None

    # =========================================================================
    # Execution
    # =========================================================================

    def execute_strategy(self, strategy: Strategy) -> ExecutionResult:
        """
        Run one strategy and feed its outcome to the registry and breaker.

        Never raises for executor failures.
        """
        logger.info(
            f"[STRATEGY-RUNNER] Executing strategy | "
            f"id={strategy.id} | name={strategy.name} | type={strategy.type}"
        )

        executor = self.find_executor(strategy)

        if executor is None:
            error = f"No executor found for strategy type: {strategy.type}"
            logger.error(
                f"[{StrategyRunnerErrorCode.NO_EXECUTOR}] {error} | "
                f"strategy_id={strategy.id}"
            )
            result = ExecutionResult.failed(strategy.id, error)
        else:
            try:
                result = executor.execute(strategy)
            except Exception as e:
                logger.error(
                    f"[{StrategyRunnerErrorCode.EXECUTOR_FAILED}] "
                    f"Executor raised | "
                    f"strategy_id={strategy.id} | "
                    f"executor={type(executor).__name__} | "
                    f"error={e}"
                )
                result = ExecutionResult.failed(strategy.id, f"Execution error: {e}")

        self._registry.record_execution(
            strategy.id,
            success=result.success,
            revenue=result.total_revenue,
            cost=result.total_cost,
        )
        self._tracker.record_outcome(
            strategy.id,
            ExecutionOutcome(
                strategy_id=strategy.id,
                success=result.success,
                revenue=result.total_revenue,
                cost=result.total_cost,
            ),
        )
        self._tracker.check_and_trip(strategy.id, strategy.name)
        record_strategy_execution(strategy.type, result.success)

        if result.success:
            if result.total_revenue > 0:
                self._notify(
                    "send_success",
                    "Strategy Execution Complete",
                    f"{strategy.name}: {result.summary}\nRevenue: {result.total_revenue}",
                )
        else:
            self._notify(
                "send_warning",
                "Strategy Execution Failed",
                f"{strategy.name}: {result.summary}",
            )

        return result

    def execute_all_active(self) -> Dict[str, ExecutionResult]:
        """
        Run every active strategy in registry order.

        Returns:
            Results keyed by strategy id, in execution order
        """
        strategies = self._registry.get_active_strategies()
        results: Dict[str, ExecutionResult] = {}

        if not strategies:
            logger.info("[STRATEGY-RUNNER] No active strategies to execute")
            return results

        logger.info(
            f"[STRATEGY-RUNNER] Executing all active strategies | "
            f"count={len(strategies)}"
        )

        for strategy in strategies:
            try:
                results[strategy.id] = self.execute_strategy(strategy)
            except Exception as e:
                # Registry/tracker failure for one strategy must not stop the batch
                logger.error(
                    f"[{StrategyRunnerErrorCode.EXECUTOR_FAILED}] "
                    f"Strategy run aborted | strategy_id={strategy.id} | error={e}"
                )
                results[strategy.id] = ExecutionResult.failed(
                    strategy.id, f"Execution error: {e}"
                )

        summary = summarize(results)

        logger.info(
            f"[STRATEGY-RUNNER] Execution cycle complete | "
            f"succeeded={summary.succeeded}/{summary.total} | "
            f"total_revenue={summary.total_revenue} | "
            f"total_cost={summary.total_cost}"
        )

        if len(strategies) > 1:
            self._notify(
                "send_info",
                "Strategy Execution Cycle Complete",
                f"{summary.succeeded}/{summary.total} strategies succeeded\n"
                f"Total revenue: {summary.total_revenue}",
            )

        return results

    def _notify(self, method_name: str, title: str, description: str) -> None:
        try:
            getattr(self._notifier, method_name)(title, description)
        except Exception as e:
            logger.warning(
                f"[STRATEGY-RUNNER] Notification failed | "
                f"method={method_name} | error={e}"
            )


__all__ = [
    "StrategyRunner",
    "StrategyRunnerErrorCode",
    "RunSummary",
    "summarize",
]
