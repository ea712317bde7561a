# Routers package
from . import campaigns_router
from . import devices_router
from . import notifications_router
from . import settings_router

__all__ = [
    "campaigns_router",
    "devices_router",
    "notifications_router",
    "settings_router",
]
