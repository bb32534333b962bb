from fastapi import APIRouter

from botgate.api.auth import router as auth_router
from botgate.api.bots import router as bots_router
from botgate.api.files import router as files_router
from botgate.api.health import router as health_router
from botgate.api.metrics import router as metrics_router
from botgate.api.threads import router as threads_router
from botgate.api.users import router as users_router
from botgate.api.webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(metrics_router)
api_router.include_router(auth_router)
api_router.include_router(users_router)
api_router.include_router(bots_router)
api_router.include_router(threads_router)
api_router.include_router(files_router)
api_router.include_router(webhooks_router)

__all__ = ["api_router"]
