"""API package."""

from fastapi import APIRouter
from .stats import router as stats_router
from .channels import router as channels_router
from .alerts import router as alerts_router
from .errors import router as errors_router
from .tokens import router as tokens_router
from .model_status import router as model_status_router

router = APIRouter()

# Include all API routers
router.include_router(stats_router, prefix="/api")  # /api/stats, /api/summary, /api/analysis, /api/sync/status
router.include_router(channels_router, prefix="/api")  # /api/channels
router.include_router(alerts_router, prefix="/api")  # /api/alerts
router.include_router(errors_router, prefix="/api")  # /api/errors
router.include_router(tokens_router, prefix="/api")  # /api/tokens
router.include_router(model_status_router, prefix="/api")  # /api/model-status
