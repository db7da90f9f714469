"""
NetWarden API

REST routes for managing monitored targets.
"""

from netwarden.api.routes import router

__all__ = [
    "router",
]
