"""API routers."""
from .alerts import router as alerts_router
from .alert_settings import router as alert_settings_router
from .evaluation import router as evaluation_router
from .metrics import router as metrics_router
from .monitors import router as monitors_router

__all__ = ["alerts_router", "alert_settings_router", "evaluation_router", "metrics_router", "monitors_router"]
