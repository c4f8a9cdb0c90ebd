"""
API route modules.
"""

from .articles import router as articles_router
from .feeds import router as feeds_router
from .icons import router as icons_router
from .maintenance import router as maintenance_router
from .misc import router as misc_router, public_router as misc_public_router
from .retention import router as retention_router
from .sync import router as sync_router

__all__ = [
    "articles_router",
    "feeds_router",
    "icons_router",
    "maintenance_router",
    "misc_router",
    "misc_public_router",
    "retention_router",
    "sync_router",
]
