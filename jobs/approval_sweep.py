"""
Approval Gate - Expiry Sweep Job

One-shot job that loads the persisted approval requests, expires every
pending request that is past its expiry time, and writes the index back.
Intended for cron-style scheduling when no long-running process hosts the
ExpiryWorker.

Reliability Level: Offline Job
Traceability: Expired request ids are logged by the gate

Usage:
    python -m jobs.approval_sweep --request-dir data/approvals
    python -m jobs.approval_sweep --list-pending
"""

import sys
import argparse
import logging
from dataclasses import replace
from typing import Optional, List

from dotenv import load_dotenv

from services.approval_config import ApprovalGateConfig, ApprovalConfigurationError
from services.approval_gate import ApprovalGate

logger = logging.getLogger(__name__)


# =============================================================================
# Job
# =============================================================================

def run_sweep(config: ApprovalGateConfig, list_pending: bool = False) -> int:
    """
    Run one expiry sweep against the configured request directory.

    Args:
        config: Gate configuration (request_dir is the only value used
            beyond defaults)
        list_pending: Log the requests still pending after the sweep

    Returns:
        Number of requests expired
    """
    gate = ApprovalGate(config=config)
    expired_count = gate.cleanup_expired()

    logger.info(
        f"[APPROVAL-SWEEP] Sweep complete | "
        f"request_dir={config.request_dir} | "
        f"expired_count={expired_count}"
    )

    if list_pending:
        for request in gate.get_pending_requests():
            logger.info(
                f"[APPROVAL-SWEEP] Pending | "
                f"id={request.id} | "
                f"title={request.title} | "
                f"risk_level={request.risk_level.name} | "
                f"approvals={len(request.approvals)}/{request.required_approvals} | "
                f"expires_at={request.expires_at.isoformat()}"
            )

    return expired_count


# =============================================================================
# CLI Entry Point
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the sweep job."""
    parser = argparse.ArgumentParser(
        description="Expire overdue approval requests"
    )
    parser.add_argument(
        "--request-dir",
        type=str,
        default=None,
        help="Directory holding pending.json (default: APPROVAL_REQUEST_DIR)"
    )
    parser.add_argument(
        "--list-pending",
        action="store_true",
        help="Log requests that remain pending after the sweep"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    load_dotenv()

    try:
        config = ApprovalGateConfig.from_environment(validate=True)
    except ApprovalConfigurationError as e:
        logger.error(f"[APPROVAL-SWEEP] {e}")
        return 2

    if args.request_dir:
        config = replace(config, request_dir=args.request_dir)

    expired_count = run_sweep(config, list_pending=args.list_pending)
    print(f"expired={expired_count}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
