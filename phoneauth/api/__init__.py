# phoneauth API Routes
from phoneauth.api.health import router as health_router
from phoneauth.api.internal import router as internal_router
from phoneauth.api.router import api_router

__all__ = ["api_router", "health_router", "internal_router"]
