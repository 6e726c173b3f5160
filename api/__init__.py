"""
API Module
FastAPI routers for the MedAdhere application
"""

from config import settings
from api.prescriptions import router as prescriptions_router
from api.doses import router as doses_router
from api.admin import router as admin_router
from api.ws import router as ws_router

from api.deps import (
    get_db,
    get_current_user,
    require_doctor,
    get_context,
    opportunistic_checks,
)


__all__ = [
    # Routers
    "prescriptions_router",
    "doses_router",
    "admin_router",
    "ws_router",
    # Dependencies
    "get_db",
    "get_current_user",
    "require_doctor",
    "get_context",
    "opportunistic_checks",
]


def include_routers(app):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(prescriptions_router, prefix=settings.API_PREFIX)
    app.include_router(doses_router, prefix=settings.API_PREFIX)
    app.include_router(admin_router, prefix=settings.API_PREFIX)
    app.include_router(ws_router, prefix=settings.API_PREFIX)
