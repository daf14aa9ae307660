"""
API v1 package.

Contains versioned operator and setup routes.
"""

from accessgate.api.v1.routes import router

__all__ = ["router"]
