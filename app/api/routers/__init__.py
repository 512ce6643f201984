"""
app/api/routers package marker.
"""

from app.api.routers.transforms import router as transforms_router
from app.api.routers.uploads import router as uploads_router

__all__ = [
    "transforms_router",
    "uploads_router",
]
