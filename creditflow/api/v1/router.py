"""API v1 router.

Mounts every v1 endpoint group under /api/v1.
"""

from fastapi import APIRouter

from creditflow.api.v1 import auth, credits, tasks, transactions, webhooks

router = APIRouter()

# =============================================================================
# Auth
# =============================================================================

router.include_router(auth.router, prefix="/auth", tags=["auth"])

# =============================================================================
# Credits & purchases
# =============================================================================

router.include_router(credits.router, prefix="/credits", tags=["credits"])
router.include_router(
    transactions.router, prefix="/transactions", tags=["transactions"]
)

# =============================================================================
# Tasks
# =============================================================================

router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])

# =============================================================================
# Webhooks
# =============================================================================

router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
