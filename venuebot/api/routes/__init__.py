"""
API Routes

Modular route definitions for the venuebot API.
"""
from venuebot.api.routes.health import router as health_router
from venuebot.api.routes.webhooks import router as webhooks_router
from venuebot.api.routes.metrics import router as metrics_router

__all__ = [
    "health_router",
    "webhooks_router",
    "metrics_router",
]
