"""
app/api/routers package marker.
"""

from app.api.routers.scores import router as scores_router
from app.api.routers.visibility import router as visibility_router

__all__ = [
    "scores_router",
    "visibility_router",
]
