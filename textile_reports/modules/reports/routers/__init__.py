"""
Routers package for Reports module
"""

from .reports import router as reports_router

__all__ = [
    "reports_router",
]
