"""
============================================================================
Strategy Executors - Execution Contract and Approval Scaffold
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Revenue and cost use decimal.Decimal

Concrete executors (what a strategy actually does) live outside the
control layer. This module defines what they exchange with the runner and
the shared template that routes risky work through the Approval Gate:

    generate_plan()                        (subclass)
    plan.total_risk_level >= HIGH  → gate the whole plan (type "strategy")
    for each step:
        step.requires_approval     → gate the step (type "action")
        run_step()                         (subclass)
        failed step + stop_on_failure → stop

An unapproved plan returns a failed result without running anything. An
unapproved step is recorded as not run and the remaining steps continue.

ERROR CODES:
    - STR-101: Executor raised during execution

============================================================================
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass, field
import logging

from services.approval_gate import ApprovalGate
from services.risk_policy import RiskLevel
from services.strategy_registry import Strategy

# Configure module logger
logger = logging.getLogger(__name__)


ZERO = Decimal("0")

AWAITING_APPROVAL = "awaiting approval"


class ExecutorErrorCode:
    """Executor error codes for audit logging."""
    EXECUTION_FAILED = "STR-101"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ExecutionStep:
    """One unit of work inside a plan."""

    id: str
    name: str
    description: str = ""
    risk_level: RiskLevel = RiskLevel.LOW
    action: str = ""
    expected_output: str = ""
    requires_approval: bool = False


@dataclass
class ExecutionPlan:
    """Ordered steps for one strategy run."""

    strategy_id: str
    strategy_name: str
    steps: List[ExecutionStep] = field(default_factory=list)
    estimated_revenue: Decimal = ZERO
    estimated_cost: Decimal = ZERO

    @property
    def total_risk_level(self) -> RiskLevel:
        """Highest step risk; LOW for an empty plan."""
        if not self.steps:
            return RiskLevel.LOW
        return max(step.risk_level for step in self.steps)


@dataclass
class StepResult:
    step_id: str
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    revenue: Decimal = ZERO
    cost: Decimal = ZERO
    artifacts: Optional[Dict[str, Any]] = None


@dataclass
class ExecutionResult:
    """Result of one strategy run, as returned to the runner."""

    strategy_id: str
    success: bool
    step_results: List[StepResult] = field(default_factory=list)
    total_revenue: Decimal = ZERO
    total_cost: Decimal = ZERO
    summary: str = ""
    artifacts: Optional[Dict[str, Any]] = None

    @classmethod
    def failed(cls, strategy_id: str, summary: str) -> "ExecutionResult":
        return cls(strategy_id=strategy_id, success=False, summary=summary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy_id": self.strategy_id,
            "success": self.success,
            "step_results": [
                {
                    "step_id": r.step_id,
                    "success": r.success,
                    "output": r.output,
                    "error": r.error,
                    "revenue": str(r.revenue),
                    "cost": str(r.cost),
                }
                for r in self.step_results
            ],
            "total_revenue": str(self.total_revenue),
            "total_cost": str(self.total_cost),
            "summary": self.summary,
        }


# =============================================================================
# BaseExecutor Class
# =============================================================================

class BaseExecutor(ABC):
    """
    Template for executors whose risky work is gated by an ApprovalGate.

    Subclasses declare supported_types and implement generate_plan() and
    run_step(). default_plan() may return a fallback used when plan
    generation raises.
    """

    supported_types: Tuple[str, ...] = ()

    def __init__(self, gate: ApprovalGate) -> None:
        self._gate = gate

    def can_execute(self, strategy: Strategy) -> bool:
        return strategy.type in self.supported_types

    @abstractmethod
    def generate_plan(self, strategy: Strategy) -> ExecutionPlan:
        """Build the execution plan for a strategy."""

    @abstractmethod
    def run_step(self, strategy: Strategy, step: ExecutionStep) -> StepResult:
        """Perform one approved step."""

    def default_plan(self, strategy: Strategy) -> Optional[ExecutionPlan]:
        return None

    def execute(self, strategy: Strategy) -> ExecutionResult:
        """
        Run a strategy through the approval-gated template.

        Never raises: any exception from a subclass hook becomes a failed
        result carrying the steps completed so far.
        """
        logger.info(
            f"[EXECUTOR] Starting strategy execution | "
            f"id={strategy.id} | name={strategy.name} | type={strategy.type}"
        )

        step_results: List[StepResult] = []
        total_revenue = ZERO
        total_cost = ZERO

        try:
            plan = self._plan(strategy)

            logger.info(
                f"[EXECUTOR] Execution plan generated | "
                f"strategy_id={strategy.id} | "
                f"step_count={len(plan.steps)} | "
                f"total_risk_level={plan.total_risk_level.name}"
            )

            if plan.total_risk_level >= RiskLevel.HIGH:
                approved = self._gate.request_approval(
                    title=f"Strategy Execution: {strategy.name}",
                    description="Plan:\n" + "\n".join(
                        f"- {s.name}: {s.description}" for s in plan.steps
                    ),
                    risk_level=plan.total_risk_level,
                    type="strategy",
                    metadata={"strategy_id": strategy.id},
                )
                if not approved:
                    logger.info(
                        f"[EXECUTOR] Strategy execution awaiting approval | "
                        f"strategy_id={strategy.id}"
                    )
                    return ExecutionResult.failed(
                        strategy.id,
                        f"High risk plan {AWAITING_APPROVAL}",
                    )

            stop_on_failure = strategy.config.get("stop_on_failure", True) is not False

            for step in plan.steps:
                if step.requires_approval:
                    step_approved = self._gate.request_approval(
                        title=f"Step Approval: {step.name}",
                        description=step.description,
                        risk_level=step.risk_level,
                        type="action",
                        metadata={"strategy_id": strategy.id, "step_id": step.id},
                    )
                    if not step_approved:
                        logger.info(
                            f"[EXECUTOR] Step awaiting approval | "
                            f"strategy_id={strategy.id} | step_id={step.id}"
                        )
                        step_results.append(StepResult(
                            step_id=step.id,
                            success=False,
                            error=AWAITING_APPROVAL,
                        ))
                        continue

                result = self.run_step(strategy, step)
                step_results.append(result)
                total_revenue += result.revenue
                total_cost += result.cost

                if not result.success and stop_on_failure:
                    logger.warning(
                        f"[EXECUTOR] Step failed, stopping execution | "
                        f"strategy_id={strategy.id} | "
                        f"step_id={step.id} | "
                        f"error={result.error}"
                    )
                    break

            success_count = sum(1 for r in step_results if r.success)
            success = success_count > 0 and success_count == len(step_results)

            if success:
                summary = (
                    f"All {len(step_results)} steps completed. "
                    f"Revenue: {total_revenue}, Cost: {total_cost}"
                )
            else:
                summary = (
                    f"{success_count}/{len(step_results)} steps completed. "
                    f"Some steps did not succeed."
                )

            logger.info(
                f"[EXECUTOR] Strategy execution completed | "
                f"strategy_id={strategy.id} | "
                f"success={success} | "
                f"total_revenue={total_revenue} | "
                f"total_cost={total_cost}"
            )

            return ExecutionResult(
                strategy_id=strategy.id,
                success=success,
                step_results=step_results,
                total_revenue=total_revenue,
                total_cost=total_cost,
                summary=summary,
            )

        except Exception as e:
            logger.error(
                f"[{ExecutorErrorCode.EXECUTION_FAILED}] Strategy execution failed | "
                f"strategy_id={strategy.id} | error={e}"
            )
            return ExecutionResult(
                strategy_id=strategy.id,
                success=False,
                step_results=step_results,
                total_revenue=total_revenue,
                total_cost=total_cost,
                summary=f"Execution error: {e}",
            )

    def _plan(self, strategy: Strategy) -> ExecutionPlan:
        try:
            return self.generate_plan(strategy)
        except Exception as e:
            fallback = self.default_plan(strategy)
            if fallback is None:
                raise
            logger.warning(
                f"[EXECUTOR] Plan generation failed, using default plan | "
                f"strategy_id={strategy.id} | error={e}"
            )
            return fallback


__all__ = [
    "ExecutionStep",
    "ExecutionPlan",
    "StepResult",
    "ExecutionResult",
    "BaseExecutor",
    "ExecutorErrorCode",
    "AWAITING_APPROVAL",
]
