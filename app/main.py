"""
============================================================================
Approval Gate - FastAPI Application Entry Point
============================================================================

Reliability Level: L6 Critical
Side Effects: Reads/writes the approval request index

Operator surface for the Approval Gate:
- /api/approvals/*  approval request listing and decisions
- /health           liveness plus pending request count
- /metrics          Prometheus exposition

The expiry sweep worker runs inside the application lifespan.

============================================================================
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging
import os

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.api.approvals import router as approvals_router, get_gate
from app.observability.discord_notifier import get_discord_notifier
from services.approval_expiry_worker import ExpiryWorker
from services.approval_gate import ApprovalGate, get_approval_gate

# Load environment variables
load_dotenv()

# Configure module logger
logger = logging.getLogger(__name__)


def create_app(
    gate: Optional[ApprovalGate] = None,
    start_worker: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        gate: Gate served by the API (default: process-wide gate)
        start_worker: Run the ExpiryWorker during the lifespan
    """

    def resolve_gate() -> ApprovalGate:
        return gate if gate is not None else get_approval_gate()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        worker: Optional[ExpiryWorker] = None
        active_gate = resolve_gate()

        if start_worker:
            worker = ExpiryWorker(
                active_gate,
                interval_seconds=active_gate.config.sweep_interval_seconds,
            )
            await worker.start()

        logger.info(
            f"[APPROVAL-APP] Started | "
            f"pending={len(active_gate.get_pending_requests())} | "
            f"expiry_worker={'running' if worker else 'disabled'}"
        )

        yield

        if worker is not None and worker.is_running:
            await worker.stop()

        get_discord_notifier().shutdown()
        logger.info("[APPROVAL-APP] Stopped")

    app = FastAPI(
        title="Approval Gate",
        description=(
            "Human approval gate for risky strategy actions.\n\n"
            "Low risk actions auto-approve; others wait for operator "
            "approval, rejection or expiry."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # ========================================================================
    # MIDDLEWARE
    # ========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # ========================================================================
    # EXCEPTION HANDLERS
    # ========================================================================

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        error_code = "SYS-500"
        logger.error(f"[{error_code}] Unhandled exception | path={request.url.path} | error={exc}")

        return JSONResponse(
            status_code=500,
            content={
                "error_code": error_code,
                "message": "Internal server error. This incident has been logged.",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )

    # ========================================================================
    # ROUTERS
    # ========================================================================

    app.include_router(
        approvals_router,
        prefix="/api/approvals",
        tags=["Approvals"]
    )

    if gate is not None:
        app.dependency_overrides[get_gate] = resolve_gate

    # ========================================================================
    # SYSTEM ENDPOINTS
    # ========================================================================

    @app.get(
        "/health",
        summary="Health Check",
        description="Lightweight health check for load balancers and monitoring.",
        tags=["System"]
    )
    def health_check():
        pending = len(resolve_gate().get_pending_requests())
        return {"status": "healthy", "pending_approvals": pending}

    @app.get(
        "/metrics",
        summary="Prometheus Metrics",
        description="Exposes Prometheus metrics for observability.",
        tags=["Observability"]
    )
    def metrics():
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    return app


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

app = create_app()
