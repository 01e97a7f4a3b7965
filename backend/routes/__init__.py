# Consolidated route imports
from .health import router as health_router
from .orders import router as orders_router

# Export all routers for easy importing
__all__ = [
    "health_router",
    "orders_router",
]
