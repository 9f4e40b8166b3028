# ============================================================================
# Approval Gate
# API Routes Module
# ============================================================================

from app.api.approvals import router as approvals_router

__all__ = ["approvals_router"]
