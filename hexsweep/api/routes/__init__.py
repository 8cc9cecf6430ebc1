"""API route modules."""

from hexsweep.api.routes.health import router as health_router
from hexsweep.api.routes.runs import router as runs_router
from hexsweep.api.routes.staging import router as staging_router

__all__ = [
    "health_router",
    "runs_router",
    "staging_router",
]
