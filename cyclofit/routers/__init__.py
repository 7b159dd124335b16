# Routers package
from . import analysis_router
from . import storage_router

__all__ = [
    "analysis_router",
    "storage_router",
]
