"""Route modules."""

from .jobs import router as jobs_router
from .payments import router as payments_router

__all__ = ["jobs_router", "payments_router"]
