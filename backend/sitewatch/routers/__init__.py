"""API routers."""
from .sites import router as sites_router
from .monitoring import router as monitoring_router
from .alerts import router as alerts_router

__all__ = ["sites_router", "monitoring_router", "alerts_router"]
