"""
============================================================================
Approval Gate - Services Layer
============================================================================

Control-layer services: risk policy, approval gating with durable request
storage, the strategy circuit breaker and the strategy runner.

Reliability Level: L6 Critical
============================================================================
"""

from services.risk_policy import (
    RiskLevel,
    is_auto_approved,
    required_approvals,
    notification_severity,
    parse_risk_level,
)

from services.approval_models import (
    ApprovalStatus,
    ApprovalRequest,
    generate_request_id,
    utc_now,
)

from services.approval_config import (
    ApprovalGateConfig,
    ApprovalConfigurationError,
    get_approval_config,
    reset_approval_config,
)

from services.approval_store import (
    RequestStore,
)

from services.approval_gate import (
    ApprovalGate,
    get_approval_gate,
    set_approval_gate,
    reset_approval_gate,
)

from services.approval_expiry_worker import ExpiryWorker

from services.strategy_registry import (
    StrategyStatus,
    Strategy,
    StrategyRegistry,
    InMemoryStrategyRegistry,
)

from services.execution_tracker import (
    ExecutionOutcome,
    ExecutionTracker,
)

from services.strategy_executors import (
    ExecutionStep,
    ExecutionPlan,
    StepResult,
    ExecutionResult,
    BaseExecutor,
)

from services.strategy_runner import (
    StrategyRunner,
    RunSummary,
    summarize,
)

__all__ = [
    # Risk policy
    "RiskLevel",
    "is_auto_approved",
    "required_approvals",
    "notification_severity",
    "parse_risk_level",
    # Approval models
    "ApprovalStatus",
    "ApprovalRequest",
    "generate_request_id",
    "utc_now",
    # Configuration
    "ApprovalGateConfig",
    "ApprovalConfigurationError",
    "get_approval_config",
    "reset_approval_config",
    # Store
    "RequestStore",
    # Gate
    "ApprovalGate",
    "get_approval_gate",
    "set_approval_gate",
    "reset_approval_gate",
    "ExpiryWorker",
    # Strategies
    "StrategyStatus",
    "Strategy",
    "StrategyRegistry",
    "InMemoryStrategyRegistry",
    "ExecutionOutcome",
    "ExecutionTracker",
    "ExecutionStep",
    "ExecutionPlan",
    "StepResult",
    "ExecutionResult",
    "BaseExecutor",
    "StrategyRunner",
    "RunSummary",
    "summarize",
]
