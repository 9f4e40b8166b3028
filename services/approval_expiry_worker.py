"""
============================================================================
Approval Expiry Worker - Background Job for Timeout Processing
============================================================================

Reliability Level: L6 Critical

This module implements the ExpiryWorker background job:
- Periodically runs the Approval Gate's expiry sweep
- Overdue pending requests transition to expired (never approved)
- A failing sweep is logged and retried on the next interval

Expiry is also evaluated lazily by the gate itself; the worker only makes
sure an abandoned request does not sit in the index as pending forever.

============================================================================
"""

from typing import Optional
import logging
import asyncio

from services.approval_gate import ApprovalGate

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# ExpiryWorker Class
# =============================================================================

class ExpiryWorker:
    """
    Background job that expires overdue approval requests.

    ============================================================================
    EXPIRY WORKER RESPONSIBILITIES:
    ============================================================================
    1. Call gate.cleanup_expired() every interval_seconds
    2. Log how many requests were expired
    3. Survive sweep failures (log and continue)
    ============================================================================
    """

    def __init__(
        self,
        gate: ApprovalGate,
        interval_seconds: int = 60,
    ) -> None:
        """
        Initialize ExpiryWorker.

        Args:
            gate: Approval Gate whose requests are swept
            interval_seconds: Interval between sweeps (default: 60)

        Raises:
            ValueError: If interval_seconds is not positive
        """
        if interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be positive, got: {interval_seconds}"
            )

        self._gate = gate
        self._interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

        logger.info(
            f"[EXPIRY-WORKER] Initialized | "
            f"interval_seconds={interval_seconds}"
        )

    @property
    def interval_seconds(self) -> int:
        """Get the interval between sweeps."""
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        """Check if the worker is currently running."""
        return self._running

    async def start(self) -> None:
        """Start the sweep loop as a background task."""
        if self._running:
            logger.warning("[EXPIRY-WORKER] Already running, ignoring start request")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())

        logger.info(
            f"[EXPIRY-WORKER] Started | "
            f"interval_seconds={self._interval_seconds}"
        )

    async def stop(self) -> None:
        """Stop the sweep loop and wait for the task to finish."""
        if not self._running:
            logger.warning("[EXPIRY-WORKER] Not running, ignoring stop request")
            return

        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("[EXPIRY-WORKER] Stopped")

    async def _run_loop(self) -> None:
        logger.info("[EXPIRY-WORKER] Starting main loop")

        while self._running:
            try:
                self.process_expired()
            except Exception as e:
                logger.error(
                    f"[EXPIRY-WORKER] Error in main loop | "
                    f"error={str(e)}"
                )

            try:
                await asyncio.sleep(self._interval_seconds)
            except asyncio.CancelledError:
                break

        logger.info("[EXPIRY-WORKER] Main loop exited")

    def run(self) -> None:
        """
        Synchronous entry point; blocks until the worker is stopped.

        Use start() from async contexts.
        """
        asyncio.run(self._run_async())

    async def _run_async(self) -> None:
        await self.start()

        while self._running:
            await asyncio.sleep(1)

    # =========================================================================
    # process_expired() Method
    # =========================================================================

    def process_expired(self) -> int:
        """
        Run one expiry sweep.

        Returns:
            Number of requests expired by this sweep
        """
        expired_count = self._gate.cleanup_expired()

        if expired_count > 0:
            logger.info(
                f"[EXPIRY-WORKER] Expiry processing complete | "
                f"expired_count={expired_count}"
            )
        else:
            logger.debug("[EXPIRY-WORKER] No expired requests found")

        return expired_count


__all__ = [
    "ExpiryWorker",
]
