#!/usr/bin/env python3
"""
============================================================================
Approval Gate - Orchestrator
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Revenue and cost use decimal.Decimal

THE ORCHESTRATOR:
    Composition root for the control layer. It owns one of each:
    1. ApprovalGate     - request/approve/reject/expire risky actions
    2. StrategyRegistry - which strategies are active
    3. ExecutionTracker - consecutive-failure circuit breaker
    4. StrategyRunner   - runs active strategies through their executors

MAIN LOOP (THE PULSE):
    while running:
        1. gate.cleanup_expired()       - expire overdue requests
        2. runner.execute_all_active()  - run strategies, trip breakers
        time.sleep(interval)

    With --serve the approval API (app.main) is served by uvicorn instead,
    and its lifespan runs the expiry worker.

USAGE:
    python main.py
    python main.py --once
    python main.py --serve --port 8000

============================================================================
"""

import sys
import time
import signal
import argparse
import logging
from dataclasses import dataclass
from typing import Optional, List, Dict

from dotenv import load_dotenv

from app.observability.discord_notifier import DiscordNotifier, get_discord_notifier
from services.approval_config import (
    ApprovalGateConfig,
    ApprovalConfigurationError,
    get_approval_config,
)
from services.approval_gate import ApprovalGate, set_approval_gate
from services.approval_store import RequestStore
from services.execution_tracker import ExecutionTracker
from services.strategy_executors import BaseExecutor, ExecutionResult
from services.strategy_registry import InMemoryStrategyRegistry, StrategyRegistry
from services.strategy_runner import StrategyRunner, summarize

logger = logging.getLogger("ORCHESTRATOR")


# =============================================================================
# Constants
# =============================================================================

# Heartbeat interval (seconds)
HEARTBEAT_INTERVAL_SECONDS = 60

VERSION = "1.0.0"


# =============================================================================
# System State
# =============================================================================

class SystemState:
    """Global run state toggled by signal handlers."""
    running = True
    heartbeat_count = 0
    errors_count = 0


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    logger.warning(f"Received signal {signum} - initiating graceful shutdown")
    SystemState.running = False


# =============================================================================
# Composition
# =============================================================================

@dataclass
class ControlLayer:
    """The components the orchestrator wires together."""
    config: ApprovalGateConfig
    notifier: DiscordNotifier
    gate: ApprovalGate
    registry: StrategyRegistry
    tracker: ExecutionTracker
    runner: StrategyRunner


def build_control_layer(
    config: Optional[ApprovalGateConfig] = None,
    registry: Optional[StrategyRegistry] = None,
    executors: Optional[List[BaseExecutor]] = None,
    notifier: Optional[DiscordNotifier] = None,
) -> ControlLayer:
    """
    Construct and wire the control-layer components.

    The gate is also installed as the process default so the HTTP API and
    executors built elsewhere share it.
    """
    config = config or get_approval_config()
    notifier = notifier or get_discord_notifier()
    registry = registry or InMemoryStrategyRegistry()

    gate = ApprovalGate(
        config=config,
        store=RequestStore(config.request_dir),
        notifier=notifier,
    )
    set_approval_gate(gate)

    tracker = ExecutionTracker(
        registry=registry,
        notifier=notifier,
        failure_threshold=config.failure_threshold,
    )
    runner = StrategyRunner(
        registry=registry,
        tracker=tracker,
        notifier=notifier,
        executors=executors,
    )

    return ControlLayer(
        config=config,
        notifier=notifier,
        gate=gate,
        registry=registry,
        tracker=tracker,
        runner=runner,
    )


def run_heartbeat(layer: ControlLayer) -> Dict[str, ExecutionResult]:
    """Execute one cycle: expiry sweep, then every active strategy."""
    SystemState.heartbeat_count += 1

    expired = layer.gate.cleanup_expired()
    results = layer.runner.execute_all_active()
    summary = summarize(results)

    logger.info(
        f"[HEARTBEAT] Complete | "
        f"heartbeat={SystemState.heartbeat_count} | "
        f"expired={expired} | "
        f"strategies={summary.total} | "
        f"succeeded={summary.succeeded} | "
        f"pending_approvals={len(layer.gate.get_pending_requests())}"
    )
    return results


def serve(host: str, port: int) -> None:
    import uvicorn
    from app.main import app

    uvicorn.run(app, host=host, port=port, log_level="info")


# =============================================================================
# Main Entry Point
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Approval gate orchestrator")
    parser.add_argument("--once", action="store_true", help="Run a single heartbeat and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=HEARTBEAT_INTERVAL_SECONDS,
        help=f"Heartbeat interval in seconds (default: {HEARTBEAT_INTERVAL_SECONDS})"
    )
    parser.add_argument("--serve", action="store_true", help="Serve the approval API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    # Load environment variables first
    load_dotenv()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if args.serve:
        serve(args.host, args.port)
        return 0

    try:
        layer = build_control_layer()
    except ApprovalConfigurationError as e:
        logger.critical(f"Configuration invalid - cannot start | error={e}")
        return 1

    logger.info(
        f"Orchestrator starting | version={VERSION} | "
        f"interval={args.interval}s | config={layer.config.to_dict()}"
    )

    if args.once:
        run_heartbeat(layer)
        layer.notifier.shutdown()
        return 0

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    while SystemState.running:
        try:
            run_heartbeat(layer)
        except Exception as e:
            SystemState.errors_count += 1
            logger.error(
                f"Heartbeat error: {str(e)} | "
                f"errors_count={SystemState.errors_count}"
            )

        # Sleep in one-second slices so a signal stops the loop promptly
        for _ in range(args.interval):
            if not SystemState.running:
                break
            time.sleep(1)

    layer.notifier.shutdown()
    logger.info(
        f"Orchestrator shutdown complete | "
        f"heartbeats={SystemState.heartbeat_count} | "
        f"errors={SystemState.errors_count}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
