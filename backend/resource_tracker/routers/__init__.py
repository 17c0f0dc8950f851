"""API routers."""
from .resources import router as resources_router
from .status import router as status_router

__all__ = ["resources_router", "status_router"]
