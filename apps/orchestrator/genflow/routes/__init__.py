"""Route modules."""

from .events import router as events_router
from .webhooks import router as webhooks_router

__all__ = ["events_router", "webhooks_router"]
