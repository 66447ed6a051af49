from .submissions import router as submissions_router
from .webhooks import router as webhooks_router
from .notifications import router as notifications_router
from .health import router as health_router
from .reference import router as reference_router
from .vc import router as vc_router
from .admin import router as admin_router

ROUTERS = (
    submissions_router,
    webhooks_router,
    notifications_router,
    health_router,
    reference_router,
    vc_router,
    admin_router,
)

__all__ = [
    "ROUTERS",
    "submissions_router",
    "webhooks_router",
    "notifications_router",
    "health_router",
    "reference_router",
    "vc_router",
    "admin_router",
]
