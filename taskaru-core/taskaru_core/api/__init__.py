"""
HTTP surface for the security core.
"""

from .app import create_app
from .components import SecurityComponents, build_components
from .routes import create_security_router

__all__ = [
    "create_app",
    "create_security_router",
    "build_components",
    "SecurityComponents",
]
